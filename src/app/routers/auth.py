from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Response, status

from src.app.deps import CurrentUser, get_current_user, get_session_registry
from src.app.services.session_counters import SessionCounterRegistry

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=CurrentUser)
async def me(user: CurrentUser = Depends(get_current_user)):
    return user


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    x_session_id: str = Header(..., min_length=1, max_length=128),
    registry: SessionCounterRegistry = Depends(get_session_registry),
) -> Response:
    """Forget what this client session already counted (sign-out)."""
    registry.end_session(x_session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
