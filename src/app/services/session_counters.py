# src/app/services/session_counters.py
"""
View and copy counters, deduplicated per client session.

A session remembers which ids it already counted, so repeated views from
the same client bump a counter only once. Counting is best effort: a failed
increment is logged and forgotten, and is not retried by a later call.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from enum import Enum
from typing import Optional

from src.app.domain.errors import SharingError
from src.app.infra.db.base import DocumentKind, DocumentStore
from src.app.services.recipe_access import RecipeAccess

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 10_000


class CounterKind(str, Enum):
    RECIPE_VIEWS = "recipe_views"
    RECIPE_COPIES = "recipe_copies"
    COLLECTION_VIEWS = "collection_views"
    COLLECTION_RECIPES_COPIED = "collection_recipes_copied"


_RECIPE_FIELDS = {
    CounterKind.RECIPE_VIEWS: "share_stats.views",
    CounterKind.RECIPE_COPIES: "share_stats.copies",
}
_COLLECTION_FIELDS = {
    CounterKind.COLLECTION_VIEWS: "stats.views",
    CounterKind.COLLECTION_RECIPES_COPIED: "stats.recipes_copied",
}


class SessionCounters:
    """Counters for one client session."""

    def __init__(self, store: DocumentStore, access: Optional[RecipeAccess] = None):
        self._store = store
        self._access = access or RecipeAccess(store)
        self._seen: dict[CounterKind, set[str]] = {kind: set() for kind in CounterKind}

    def has_counted(self, kind: CounterKind, doc_id: str) -> bool:
        return doc_id in self._seen[kind]

    def _claim(self, kind: CounterKind, doc_id: str) -> bool:
        # check-and-add must not yield to the event loop
        seen = self._seen[kind]
        if doc_id in seen:
            return False
        seen.add(doc_id)
        return True

    async def increment_recipe_views(self, recipe_id: str) -> bool:
        return await self._count_recipe(CounterKind.RECIPE_VIEWS, recipe_id)

    async def increment_recipe_copies(self, recipe_id: str) -> bool:
        return await self._count_recipe(CounterKind.RECIPE_COPIES, recipe_id)

    async def increment_collection_views(self, collection_id: str) -> bool:
        return await self._count_collection(CounterKind.COLLECTION_VIEWS, collection_id)

    async def increment_collection_recipes_copied(self, collection_id: str) -> bool:
        return await self._count_collection(CounterKind.COLLECTION_RECIPES_COPIED, collection_id)

    async def _count_recipe(self, kind: CounterKind, recipe_id: str) -> bool:
        """Returns True when this call was the one that counted."""
        if not self._claim(kind, recipe_id):
            return False
        try:
            owner_id = await self._access.get_recipe_owner_id(recipe_id)
            if not owner_id:
                logger.debug("counter.skipped kind=%s id=%s reason=no_index", kind.value, recipe_id)
                return True
            await self._store.increment(
                DocumentKind.RECIPES, recipe_id, _RECIPE_FIELDS[kind], owner_id=owner_id
            )
            if kind is CounterKind.RECIPE_VIEWS:
                await self._bump_public_index_views(recipe_id)
        except SharingError as error:
            logger.warning("counter.failed kind=%s id=%s error=%s", kind.value, recipe_id, error)
        return True

    async def _bump_public_index_views(self, recipe_id: str) -> None:
        entry = await self._store.get(DocumentKind.PUBLIC_RECIPES, recipe_id)
        if entry is None:
            return
        await self._store.increment(DocumentKind.PUBLIC_RECIPES, recipe_id, "views")

    async def _count_collection(self, kind: CounterKind, collection_id: str) -> bool:
        if not self._claim(kind, collection_id):
            return False
        try:
            await self._store.increment(
                DocumentKind.COLLECTIONS, collection_id, _COLLECTION_FIELDS[kind]
            )
        except SharingError as error:
            logger.warning("counter.failed kind=%s id=%s error=%s", kind.value, collection_id, error)
        return True


class SessionCounterRegistry:
    """
    Maps client session ids to their ``SessionCounters``.
    Least recently used sessions are evicted past ``max_sessions``.
    """

    def __init__(
        self,
        store: DocumentStore,
        access: Optional[RecipeAccess] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ):
        self._store = store
        self._access = access or RecipeAccess(store)
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SessionCounters]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> SessionCounters:
        counters = self._sessions.get(session_id)
        if counters is not None:
            self._sessions.move_to_end(session_id)
            return counters

        counters = SessionCounters(self._store, self._access)
        self._sessions[session_id] = counters
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.debug("counter.session_evicted session=%s", evicted)
        return counters

    def end_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
