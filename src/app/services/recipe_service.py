# src/app/services/recipe_service.py
"""
Owner-side recipe operations.
Every call is scoped to the caller's own recipe space, so a non-owner has
no write path at all.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from src.app.domain.errors import NotFoundError
from src.app.domain.identity import Caller
from src.app.domain.models import (
    Recipe,
    ShareStats,
    Visibility,
    is_discoverable,
    migrate_visibility,
    resolve_visibility,
)
from src.app.domain.timestamps import format_timestamp, now_utc
from src.app.infra.db.base import (
    Document,
    DocumentKind,
    DocumentStore,
    QueryOptions,
    Unsubscribe,
)
from src.app.services.visibility_sync import VisibilitySync
from src.services.ids import generate_recipe_id

logger = logging.getLogger(__name__)

# Fields that only the sync layer or the counters may write
_PROTECTED_FIELDS = {"id", "owner_id", "created_at", "shared_at", "share_stats", "updated_at"}
LIST_SAFETY_LIMIT = 1000


class RecipeService:
    """
    Service for the owner's recipes.

    Responsibilities:
    - Create, read, update and delete the caller's recipes
    - Bridge legacy ``is_public`` updates onto visibility
    - Route every visibility change through ``VisibilitySync``
    """

    def __init__(
        self,
        store: DocumentStore,
        caller: Caller,
        sync: Optional[VisibilitySync] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._caller = caller
        self._clock = clock
        self._sync = sync or VisibilitySync(store, clock=clock)

    @property
    def sync(self) -> VisibilitySync:
        return self._sync

    async def create_recipe(
        self,
        title: str,
        *,
        content: Optional[dict[str, Any]] = None,
        image: Optional[str] = None,
        visibility: Visibility = Visibility.PRIVATE,
        recipe_id: Optional[str] = None,
    ) -> Recipe:
        """
        Create a recipe. It is stored private first; a non-private initial
        visibility then goes through the regular sync.
        """
        owner_id = self._caller.caller_id()
        now = self._clock()
        recipe = Recipe(
            id=recipe_id or generate_recipe_id(),
            owner_id=owner_id,
            title=title,
            visibility=Visibility.PRIVATE,
            is_public=False,
            share_stats=ShareStats(),
            image=image,
            content=dict(content or {}),
            created_at=now,
            updated_at=now,
        )
        document = recipe.to_document()
        await self._store.set(DocumentKind.RECIPES, recipe.id, document, owner_id=owner_id)
        logger.info("Created recipe: id=%s, owner=%s", recipe.id, owner_id)

        if visibility is not Visibility.PRIVATE:
            document = await self._sync.apply(document, visibility)
        return Recipe.from_document(document)

    async def get_recipe(self, recipe_id: str) -> Recipe:
        return Recipe.from_document(await self._require(recipe_id))

    async def list_recipes(self) -> list[Recipe]:
        owner_id = self._caller.caller_id()
        documents = await self._store.query(
            DocumentKind.RECIPES,
            options=QueryOptions(order_by="updated_at", limit=LIST_SAFETY_LIMIT),
            owner_id=owner_id,
        )
        return [Recipe.from_document(doc) for doc in documents]

    async def update_recipe(self, recipe_id: str, changes: dict[str, Any]) -> Recipe:
        """
        Apply a partial update.

        ``visibility`` wins over ``is_public`` when both are given; a bare
        ``is_public`` (old clients) is converted to public/private. Any
        visibility change goes through the sync after the content write.
        """
        current = await self._require(recipe_id)
        owner_id = current["owner_id"]
        processed = {k: v for k, v in changes.items() if k not in _PROTECTED_FIELDS}

        target: Optional[Visibility] = None
        raw_visibility = processed.pop("visibility", None)
        raw_is_public = processed.pop("is_public", None)
        if raw_visibility is not None:
            target = Visibility(raw_visibility)
        elif raw_is_public is not None:
            target = migrate_visibility(bool(raw_is_public))

        document = dict(current)
        if processed:
            processed["updated_at"] = format_timestamp(self._clock())
            await self._store.update(DocumentKind.RECIPES, recipe_id, processed, owner_id=owner_id)
            document.update(processed)

        old_visibility = resolve_visibility(current)
        if target is not None and target != old_visibility:
            document = await self._sync.apply(document, target)
        elif is_discoverable(old_visibility) and ("title" in processed or "image" in processed):
            # public index entry carries title and image
            await self._sync.reconcile(document)
        return Recipe.from_document(document)

    async def set_recipe_visibility(self, recipe_id: str, visibility: Visibility) -> Recipe:
        current = await self._require(recipe_id)
        document = await self._sync.apply(current, visibility)
        return Recipe.from_document(document)

    async def set_recipe_public_status(self, recipe_id: str, is_public: bool) -> Recipe:
        """Deprecated boolean form of ``set_recipe_visibility``."""
        return await self.set_recipe_visibility(recipe_id, migrate_visibility(is_public))

    async def reconcile_recipe(self, recipe_id: str) -> Recipe:
        current = await self._require(recipe_id)
        await self._sync.reconcile(current)
        return Recipe.from_document(current)

    async def delete_recipe(self, recipe_id: str) -> None:
        current = await self._require(recipe_id)
        await self._sync.demote_and_delete(current)
        logger.info("Deleted recipe: id=%s, owner=%s", recipe_id, current["owner_id"])

    def subscribe_to_recipe(
        self,
        recipe_id: str,
        on_update: Callable[[Optional[Recipe]], None],
    ) -> Unsubscribe:
        owner_id = self._caller.caller_id()

        def _deliver(document: Optional[Document]) -> None:
            on_update(Recipe.from_document(document) if document else None)

        return self._store.subscribe(DocumentKind.RECIPES, recipe_id, _deliver, owner_id=owner_id)

    async def _require(self, recipe_id: str) -> Document:
        owner_id = self._caller.caller_id()
        document = await self._store.get(DocumentKind.RECIPES, recipe_id, owner_id=owner_id)
        if document is None:
            raise NotFoundError("recipe", recipe_id)
        return document

