from __future__ import annotations


class SharingError(Exception):
    pass


class NotSignedInError(SharingError):
    def __init__(self, message: str = "User not signed in"):
        super().__init__(message)


class NotFoundError(SharingError):
    def __init__(self, kind: str, doc_id: str):
        super().__init__(f"{kind} not found: {doc_id}")
        self.kind = kind
        self.doc_id = doc_id


class NotAuthorizedError(SharingError):
    def __init__(self, kind: str, doc_id: str, caller_id: str):
        super().__init__(f"Not authorized to modify {kind} {doc_id}")
        self.kind = kind
        self.doc_id = doc_id
        self.caller_id = caller_id


class BackingStoreUnavailableError(SharingError):
    retryable = True

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Backing store error during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class VisibilitySyncError(BackingStoreUnavailableError):
    def __init__(
        self,
        recipe_id: str,
        failed_step: str,
        completed_steps: list[str],
        reason: str,
    ):
        super().__init__(f"visibility sync ({failed_step})", reason)
        self.recipe_id = recipe_id
        self.failed_step = failed_step
        self.completed_steps = completed_steps


class InvalidMembershipError(SharingError, ValueError):
    pass
