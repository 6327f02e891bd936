# src/app/services/collection_service.py
"""
Collections: curated, ordered lists of recipe ids.

A collection may reference recipes of other users, but it can only raise the
visibility of recipes its owner owns. Adding a private recipe to an
accessible collection elevates the recipe to the collection's tier; nothing
here ever lowers a recipe's visibility.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from src.app.domain.errors import (
    BackingStoreUnavailableError,
    InvalidMembershipError,
    NotFoundError,
)
from src.app.domain.identity import Caller
from src.app.domain.models import (
    Collection,
    CollectionStats,
    Recipe,
    Visibility,
    VisibilityChange,
    is_accessible,
    is_discoverable,
    legacy_is_public,
    migrate_visibility,
    resolve_visibility,
)
from src.app.domain.timestamps import EPOCH, format_timestamp, now_utc
from src.app.infra.db.base import (
    Document,
    DocumentKind,
    DocumentStore,
    QueryFilter,
    QueryOptions,
    Unsubscribe,
)
from src.app.services.authorization import require_collection_owner
from src.app.services.discovery_service import merge_by_id
from src.app.services.recipe_access import RecipeAccess
from src.app.services.visibility_sync import VisibilitySync
from src.services.ids import generate_share_id

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "My Recipes"
LIST_SAFETY_LIMIT = 1000

_PROTECTED_FIELDS = {"id", "owner_id", "created_at", "updated_at", "stats"}


def _ensure_unique(recipe_ids: Iterable[str]) -> list[str]:
    ids = [str(rid) for rid in recipe_ids]
    if len(set(ids)) != len(ids):
        raise InvalidMembershipError("recipe_ids must not contain duplicates")
    return ids


def _newest_first(documents: Iterable[Document]) -> list[Collection]:
    collections = [Collection.from_document(doc) for doc in documents]
    collections.sort(key=lambda c: c.updated_at or EPOCH, reverse=True)
    return collections


class CollectionService:
    """
    Service for collections and their membership.

    Every mutation re-reads the collection through
    ``require_collection_owner`` before writing.
    """

    def __init__(
        self,
        store: DocumentStore,
        caller: Caller,
        sync: Optional[VisibilitySync] = None,
        access: Optional[RecipeAccess] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._store = store
        self._caller = caller
        self._clock = clock
        self._sync = sync or VisibilitySync(store, clock=clock)
        self._access = access or RecipeAccess(store)

    # ------------------------------------------------------------------ #
    # CRUD
    # ------------------------------------------------------------------ #
    async def create_collection(
        self,
        name: str = DEFAULT_COLLECTION_NAME,
        description: Optional[str] = None,
        visibility: Visibility = Visibility.PRIVATE,
        *,
        owner_name: Optional[str] = None,
        owner_avatar: Optional[str] = None,
    ) -> Collection:
        owner_id = self._caller.caller_id()
        now = self._clock()
        collection = Collection(
            id=generate_share_id(),
            owner_id=owner_id,
            name=name,
            visibility=visibility,
            is_public=legacy_is_public(visibility),
            recipe_ids=[],
            description=description or None,
            owner_name=owner_name or None,
            owner_avatar=owner_avatar or None,
            stats=CollectionStats(),
            created_at=now,
            updated_at=now,
        )
        await self._store.set(DocumentKind.COLLECTIONS, collection.id, collection.to_document())
        logger.info(
            "Created collection: id=%s, owner=%s, visibility=%s",
            collection.id,
            owner_id,
            visibility.value,
        )
        return collection

    async def get_collection(self, collection_id: str) -> Optional[Collection]:
        """None when the collection does not exist. Store failures propagate."""
        data = await self._store.get(DocumentKind.COLLECTIONS, collection_id)
        return Collection.from_document(data) if data else None

    async def get_viewable_collection(self, collection_id: str) -> Optional[Collection]:
        """The owner sees any of their collections; others only accessible ones."""
        collection = await self.get_collection(collection_id)
        if collection is None:
            return None
        if collection.owner_id == self._caller.user_id:
            return collection
        if is_accessible(collection.resolved_visibility):
            return collection
        return None

    async def update_collection(self, collection_id: str, changes: dict[str, Any]) -> Collection:
        """
        Partial update. ``None`` values are dropped; ``is_public`` follows
        ``visibility``, and a bare ``is_public`` is mapped onto visibility.
        Changing a collection's visibility does not touch its recipes.
        """
        current = await require_collection_owner(
            self._store, collection_id, self._caller.caller_id()
        )
        processed = {
            key: value
            for key, value in changes.items()
            if value is not None and key not in _PROTECTED_FIELDS
        }

        raw_visibility = processed.pop("visibility", None)
        raw_is_public = processed.pop("is_public", None)
        if raw_visibility is not None:
            visibility = Visibility(raw_visibility)
        elif raw_is_public is not None:
            visibility = migrate_visibility(bool(raw_is_public))
        else:
            visibility = None
        if visibility is not None:
            processed["visibility"] = visibility.value
            processed["is_public"] = legacy_is_public(visibility)

        if "recipe_ids" in processed:
            processed["recipe_ids"] = _ensure_unique(processed["recipe_ids"])

        processed["updated_at"] = format_timestamp(self._clock())
        await self._store.update(DocumentKind.COLLECTIONS, collection_id, processed)
        return Collection.from_document({**current, **processed})

    async def delete_collection(self, collection_id: str) -> None:
        await require_collection_owner(self._store, collection_id, self._caller.caller_id())
        await self._store.delete(DocumentKind.COLLECTIONS, collection_id)
        logger.info("Deleted collection: id=%s", collection_id)

    async def get_user_collections(self) -> list[Collection]:
        """The caller's collections, most recently updated first."""
        owner_id = self._caller.caller_id()
        documents = await self._store.query(
            DocumentKind.COLLECTIONS,
            [QueryFilter("owner_id", "==", owner_id)],
            QueryOptions(limit=LIST_SAFETY_LIMIT),
        )
        return _newest_first(documents)

    async def get_or_create_default_collection(
        self,
        owner_name: Optional[str] = None,
        owner_avatar: Optional[str] = None,
    ) -> Collection:
        for collection in reversed(await self.get_user_collections()):
            if collection.name == DEFAULT_COLLECTION_NAME:
                return collection
        return await self.create_collection(
            DEFAULT_COLLECTION_NAME,
            visibility=Visibility.PRIVATE,
            owner_name=owner_name,
            owner_avatar=owner_avatar,
        )

    def subscribe_to_collection(
        self,
        collection_id: str,
        on_update: Callable[[Optional[Collection]], None],
    ) -> Unsubscribe:
        def _deliver(document: Optional[Document]) -> None:
            on_update(Collection.from_document(document) if document else None)

        return self._store.subscribe(DocumentKind.COLLECTIONS, collection_id, _deliver)

    def subscribe_to_user_collections(
        self,
        on_update: Callable[[list[Collection]], None],
    ) -> Unsubscribe:
        """
        Live view of ``get_user_collections``: ``on_update`` gets the full
        list, newest first, now and after every change to the set.
        """
        owner_id = self._caller.caller_id()

        def _deliver(documents: list[Document]) -> None:
            on_update(_newest_first(documents))

        return self._store.subscribe_query(
            DocumentKind.COLLECTIONS,
            [QueryFilter("owner_id", "==", owner_id)],
            _deliver,
            QueryOptions(limit=LIST_SAFETY_LIMIT),
        )

    # ------------------------------------------------------------------ #
    # Membership
    # ------------------------------------------------------------------ #
    async def add_recipe_to_collection(
        self,
        collection_id: str,
        recipe_id: str,
        recipe: Optional[Recipe] = None,
    ) -> VisibilityChange:
        """
        Append a recipe, elevating it first when the collection is viewable
        by others and the recipe is not.

        Args:
            collection_id: Target collection (must be the caller's)
            recipe_id: Recipe to add
            recipe: The caller's copy of the recipe, if at hand. Only used to
                tell whether the caller owns it; visibility is re-read.

        Returns:
            Whether the recipe's visibility was changed, and to what

        Raises:
            NotFoundError / NotAuthorizedError: From the ownership check
            VisibilitySyncError: If the elevation failed; the collection is
                left untouched
        """
        caller_id = self._caller.caller_id()
        current = await require_collection_owner(self._store, collection_id, caller_id)
        recipe_ids = [str(rid) for rid in current.get("recipe_ids") or []]
        if recipe_id in recipe_ids:
            return VisibilityChange()

        change = await self._elevate_for(current, recipe_id, recipe, caller_id)

        recipe_ids.append(recipe_id)
        await self._store.update(
            DocumentKind.COLLECTIONS,
            collection_id,
            {"recipe_ids": recipe_ids, "updated_at": format_timestamp(self._clock())},
        )
        logger.info(
            "collection.recipe_added collection=%s recipe=%s elevated=%s",
            collection_id,
            recipe_id,
            change.recipe_visibility_changed,
        )
        return change

    async def _elevate_for(
        self,
        collection_doc: Document,
        recipe_id: str,
        recipe: Optional[Recipe],
        caller_id: str,
    ) -> VisibilityChange:
        target = resolve_visibility(collection_doc)
        if not is_accessible(target):
            return VisibilityChange()
        if recipe is not None and recipe.owner_id != caller_id:
            return VisibilityChange()

        recipe_doc = await self._store.get(DocumentKind.RECIPES, recipe_id, owner_id=caller_id)
        if recipe_doc is None:
            # someone else's recipe: referenced, never elevated
            return VisibilityChange()
        if is_accessible(resolve_visibility(recipe_doc)):
            return VisibilityChange()

        await self._sync.apply(recipe_doc, target)
        return VisibilityChange(recipe_visibility_changed=True, new_visibility=target)

    async def remove_recipe_from_collection(self, collection_id: str, recipe_id: str) -> None:
        current = await require_collection_owner(
            self._store, collection_id, self._caller.caller_id()
        )
        recipe_ids = [str(rid) for rid in current.get("recipe_ids") or []]
        if recipe_id not in recipe_ids:
            return
        await self._store.update(
            DocumentKind.COLLECTIONS,
            collection_id,
            {
                "recipe_ids": [rid for rid in recipe_ids if rid != recipe_id],
                "updated_at": format_timestamp(self._clock()),
            },
        )

    async def reorder_collection_recipes(self, collection_id: str, recipe_ids: list[str]) -> None:
        """
        Replace the member order.

        Raises:
            InvalidMembershipError: If ``recipe_ids`` has duplicates or is not
                exactly the current set of members
        """
        ordered = _ensure_unique(recipe_ids)
        current = await require_collection_owner(
            self._store, collection_id, self._caller.caller_id()
        )
        existing = {str(rid) for rid in current.get("recipe_ids") or []}
        if set(ordered) != existing:
            raise InvalidMembershipError("reorder must list exactly the collection's recipes")
        await self._store.update(
            DocumentKind.COLLECTIONS,
            collection_id,
            {"recipe_ids": ordered, "updated_at": format_timestamp(self._clock())},
        )

    async def sync_all_recipes_to_collection(self, collection_id: str, recipe_ids: list[str]) -> None:
        """Append the ids that are not members yet, keeping the existing order."""
        if not recipe_ids:
            return
        current = await require_collection_owner(
            self._store, collection_id, self._caller.caller_id()
        )
        existing = [str(rid) for rid in current.get("recipe_ids") or []]
        seen = set(existing)
        new_ids: list[str] = []
        for rid in recipe_ids:
            if rid not in seen:
                seen.add(rid)
                new_ids.append(rid)
        if not new_ids:
            return
        await self._store.update(
            DocumentKind.COLLECTIONS,
            collection_id,
            {"recipe_ids": existing + new_ids, "updated_at": format_timestamp(self._clock())},
        )
        logger.info("collection.synced collection=%s added=%d", collection_id, len(new_ids))

    # ------------------------------------------------------------------ #
    # Reads across owners
    # ------------------------------------------------------------------ #
    async def get_collection_recipes(
        self,
        collection: Collection,
        viewer_id: Optional[str],
        owner_recipes: Optional[list[Recipe]] = None,
    ) -> list[Recipe]:
        """
        Members of ``collection`` as seen by ``viewer_id``, in collection order.
        The owner sees every member they still have; anyone else sees only
        accessible members.
        """
        if viewer_id is not None and viewer_id == collection.owner_id:
            if owner_recipes is not None:
                by_id = {recipe.id: recipe for recipe in owner_recipes}
                return [by_id[rid] for rid in collection.recipe_ids if rid in by_id]
            return await self._access.fetch_owned_recipes(viewer_id, collection.recipe_ids)
        return await self._access.fetch_accessible_recipes(collection.recipe_ids)

    async def get_public_collections_containing_recipe(self, recipe_id: str) -> list[Collection]:
        """
        Discoverable collections listing ``recipe_id``, from both the current
        and the legacy schema. Read failures yield an empty list.
        """
        contains = QueryFilter("recipe_ids", "array-contains", recipe_id)
        try:
            current_schema, legacy_schema = await asyncio.gather(
                self._store.query(
                    DocumentKind.COLLECTIONS,
                    [QueryFilter("visibility", "==", Visibility.PUBLIC.value), contains],
                ),
                self._store.query(
                    DocumentKind.COLLECTIONS,
                    [QueryFilter("is_public", "==", True), contains],
                ),
            )
        except BackingStoreUnavailableError as error:
            logger.warning("collection.containing_query_failed recipe=%s error=%s", recipe_id, error)
            return []

        merged = merge_by_id(current_schema, legacy_schema)
        return [
            Collection.from_document(doc)
            for doc in merged
            if is_discoverable(resolve_visibility(doc))
        ]

    async def require_existing(self, collection_id: str) -> Collection:
        collection = await self.get_viewable_collection(collection_id)
        if collection is None:
            raise NotFoundError("collection", collection_id)
        return collection
