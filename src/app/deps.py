# src/app/deps.py (singletons exposed as FastAPI dependencies)

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from src.app.config import settings
from src.app.domain.identity import Caller
from src.app.infra.db.base import DocumentStore
from src.app.infra.db.supabase_store import SupabaseDocumentStore
from src.app.services.collection_service import CollectionService
from src.app.services.discovery_service import DiscoveryService
from src.app.services.preferences_service import PreferencesService
from src.app.services.recipe_access import RecipeAccess
from src.app.services.recipe_service import RecipeService
from src.app.services.session_counters import SessionCounterRegistry, SessionCounters
from src.app.services.visibility_sync import VisibilitySync

_client: Client | None = None
_store: SupabaseDocumentStore | None = None
_registry: SessionCounterRegistry | None = None


def get_supabase() -> Client:
    global _client
    if _client is None:
        _client = create_client(str(settings.SUPABASE_URL),
                                settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def get_document_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = SupabaseDocumentStore(
            get_supabase(),
            poll_interval_seconds=settings.SUBSCRIPTION_POLL_INTERVAL_SECONDS,
        )
    return _store


async def shutdown_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


auth_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None


def _user_from_token(supa: Client, token: str) -> CurrentUser:
    res = supa.auth.get_user(token)
    user = res.user if res else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    # user_metadata may carry a display name
    name = None
    meta = getattr(user, "user_metadata", None) or {}
    if isinstance(meta, dict):
        name = meta.get("name")

    return CurrentUser(id=str(user.id), email=user.email, name=name)


async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Validates ``Authorization: Bearer <access_token>`` against Supabase auth
    and returns the minimal user record.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    try:
        return _user_from_token(supa, cred.credentials)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid/expired token")


async def get_optional_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser | None:
    """Like ``get_current_user`` but anonymous requests get ``None``."""
    if cred is None:
        return None
    return await get_current_user(cred, supa)


def get_caller(user: CurrentUser = Depends(get_current_user)) -> Caller:
    return Caller(user.id)


def get_optional_caller(user: CurrentUser | None = Depends(get_optional_user)) -> Caller:
    return Caller(user.id if user else None)


def get_recipe_access(store: DocumentStore = Depends(get_document_store)) -> RecipeAccess:
    return RecipeAccess(store, chunk_size=settings.BATCH_FETCH_CHUNK_SIZE)


def get_visibility_sync(store: DocumentStore = Depends(get_document_store)) -> VisibilitySync:
    return VisibilitySync(store)


def get_recipe_service(
    store: DocumentStore = Depends(get_document_store),
    caller: Caller = Depends(get_caller),
    sync: VisibilitySync = Depends(get_visibility_sync),
) -> RecipeService:
    return RecipeService(store, caller, sync=sync)


def _collection_service(
    store: DocumentStore,
    caller: Caller,
    sync: VisibilitySync,
    access: RecipeAccess,
) -> CollectionService:
    return CollectionService(store, caller, sync=sync, access=access)


def get_collection_service(
    store: DocumentStore = Depends(get_document_store),
    caller: Caller = Depends(get_caller),
    sync: VisibilitySync = Depends(get_visibility_sync),
    access: RecipeAccess = Depends(get_recipe_access),
) -> CollectionService:
    return _collection_service(store, caller, sync, access)


def get_viewer_collection_service(
    store: DocumentStore = Depends(get_document_store),
    caller: Caller = Depends(get_optional_caller),
    sync: VisibilitySync = Depends(get_visibility_sync),
    access: RecipeAccess = Depends(get_recipe_access),
) -> CollectionService:
    """Collection reads that anonymous viewers may also perform."""
    return _collection_service(store, caller, sync, access)


def get_discovery_service(
    store: DocumentStore = Depends(get_document_store),
    access: RecipeAccess = Depends(get_recipe_access),
) -> DiscoveryService:
    return DiscoveryService(
        store,
        access,
        fetch_ceiling=settings.DISCOVERY_FETCH_CEILING,
        default_page_size=settings.DISCOVERY_DEFAULT_PAGE_SIZE,
    )


def get_preferences_service(
    store: DocumentStore = Depends(get_document_store),
    caller: Caller = Depends(get_caller),
) -> PreferencesService:
    return PreferencesService(store, caller)


def get_session_registry(
    store: DocumentStore = Depends(get_document_store),
    access: RecipeAccess = Depends(get_recipe_access),
) -> SessionCounterRegistry:
    global _registry
    if _registry is None:
        _registry = SessionCounterRegistry(
            store, access, max_sessions=settings.SESSION_REGISTRY_MAX_SESSIONS
        )
    return _registry


def get_session_counters(
    x_session_id: str = Header(..., min_length=1, max_length=128),
    registry: SessionCounterRegistry = Depends(get_session_registry),
) -> SessionCounters:
    """Counters for the client session named by the ``X-Session-Id`` header."""
    return registry.get(x_session_id)
