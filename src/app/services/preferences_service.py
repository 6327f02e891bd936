# src/app/services/preferences_service.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from src.app.domain.errors import BackingStoreUnavailableError
from src.app.domain.identity import Caller
from src.app.domain.models import UserPreferences
from src.app.infra.db.base import Document, DocumentKind, DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

PREFERENCES_DOC_ID = "user-preferences"
RECIPE_SETTINGS_DOC_ID = "recipe-settings"


def _preferences_from(document: Optional[Document]) -> UserPreferences:
    if not document:
        return UserPreferences()
    return UserPreferences(hide_built_in_recipes=bool(document.get("hide_built_in_recipes", False)))


def _servings_from(document: Optional[Document]) -> dict[str, int]:
    raw = (document or {}).get("servings_map") or {}
    servings: dict[str, int] = {}
    for recipe_id, value in raw.items():
        try:
            servings[str(recipe_id)] = int(value)
        except (TypeError, ValueError):
            continue
    return servings


class PreferencesService:
    """
    Per-user settings stored in the caller's own ``settings`` space.
    Loads fall back to defaults when the store cannot be read; saves raise.
    """

    def __init__(self, store: DocumentStore, caller: Caller):
        self._store = store
        self._caller = caller

    async def load_preferences(self) -> UserPreferences:
        owner_id = self._caller.caller_id()
        try:
            document = await self._store.get(
                DocumentKind.SETTINGS, PREFERENCES_DOC_ID, owner_id=owner_id
            )
        except BackingStoreUnavailableError as error:
            logger.warning("preferences.load_failed owner=%s error=%s", owner_id, error)
            return UserPreferences()
        return _preferences_from(document)

    async def save_preferences(self, preferences: UserPreferences) -> None:
        owner_id = self._caller.caller_id()
        document: dict[str, Any] = {
            "id": PREFERENCES_DOC_ID,
            "hide_built_in_recipes": preferences.hide_built_in_recipes,
        }
        await self._store.set(DocumentKind.SETTINGS, PREFERENCES_DOC_ID, document, owner_id=owner_id)

    async def load_servings_map(self) -> dict[str, int]:
        owner_id = self._caller.caller_id()
        try:
            document = await self._store.get(
                DocumentKind.SETTINGS, RECIPE_SETTINGS_DOC_ID, owner_id=owner_id
            )
        except BackingStoreUnavailableError as error:
            logger.warning("preferences.servings_load_failed owner=%s error=%s", owner_id, error)
            return {}
        return _servings_from(document)

    async def save_servings_map(self, servings_map: dict[str, int]) -> None:
        owner_id = self._caller.caller_id()
        document = {"id": RECIPE_SETTINGS_DOC_ID, "servings_map": dict(servings_map)}
        await self._store.set(
            DocumentKind.SETTINGS, RECIPE_SETTINGS_DOC_ID, document, owner_id=owner_id
        )

    def subscribe_to_preferences(
        self,
        on_update: Callable[[UserPreferences], None],
    ) -> Unsubscribe:
        owner_id = self._caller.caller_id()
        return self._store.subscribe(
            DocumentKind.SETTINGS,
            PREFERENCES_DOC_ID,
            lambda document: on_update(_preferences_from(document)),
            owner_id=owner_id,
        )
