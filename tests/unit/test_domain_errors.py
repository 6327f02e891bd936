from __future__ import annotations

import pytest

from src.app.domain.errors import (
    BackingStoreUnavailableError,
    InvalidMembershipError,
    NotAuthorizedError,
    NotFoundError,
    NotSignedInError,
    SharingError,
    VisibilitySyncError,
)
from src.app.domain.identity import Caller


class TestSharingError:
    def test_base_exception(self) -> None:
        error = SharingError("Base error")
        assert str(error) == "Base error"
        assert isinstance(error, Exception)


class TestNotSignedInError:
    def test_default_message(self) -> None:
        assert str(NotSignedInError()) == "User not signed in"


class TestNotFoundError:
    def test_includes_kind_and_id(self) -> None:
        error = NotFoundError("collection", "c1")
        assert str(error) == "collection not found: c1"
        assert error.kind == "collection"
        assert error.doc_id == "c1"


class TestNotAuthorizedError:
    def test_includes_caller(self) -> None:
        error = NotAuthorizedError("collection", "c1", "bob")
        assert "c1" in str(error)
        assert error.caller_id == "bob"
        assert isinstance(error, SharingError)


class TestBackingStoreUnavailableError:
    def test_is_retryable(self) -> None:
        error = BackingStoreUnavailableError("get recipes", "timeout")
        assert error.retryable is True
        assert "get recipes" in str(error)
        assert error.reason == "timeout"


class TestVisibilitySyncError:
    def test_carries_steps(self) -> None:
        error = VisibilitySyncError("r1", "write_recipe", ["upsert_accessible_index"], "boom")

        assert isinstance(error, BackingStoreUnavailableError)
        assert error.recipe_id == "r1"
        assert error.failed_step == "write_recipe"
        assert error.completed_steps == ["upsert_accessible_index"]
        assert "write_recipe" in str(error)


class TestInvalidMembershipError:
    def test_is_value_error(self) -> None:
        assert isinstance(InvalidMembershipError("dup"), ValueError)


class TestCaller:
    def test_anonymous_caller_raises(self) -> None:
        caller = Caller()
        assert caller.is_signed_in is False
        with pytest.raises(NotSignedInError):
            caller.caller_id()

    def test_signed_in_caller(self) -> None:
        assert Caller("alice").caller_id() == "alice"
