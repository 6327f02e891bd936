from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.app.domain.errors import NotSignedInError


@dataclass(frozen=True)
class Caller:
    """Identity of whoever issued the current operation (``None`` = anonymous)."""
    user_id: Optional[str] = None

    @property
    def is_signed_in(self) -> bool:
        return bool(self.user_id)

    def caller_id(self) -> str:
        if not self.user_id:
            raise NotSignedInError()
        return self.user_id
