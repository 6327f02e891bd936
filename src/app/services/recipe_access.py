# src/app/services/recipe_access.py
"""
Read path for recipes the viewer does not own.

A non-owner (or anonymous) viewer cannot list another user's recipes, but
may ``get`` index entries and single recipe documents by id. Every lookup
therefore goes index entry -> owner id -> recipe document, and the recipe's
own visibility has the final word.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Iterator, Optional, Sequence, TypeVar

from src.app.domain.errors import BackingStoreUnavailableError
from src.app.domain.models import (
    AccessibleRecipeIndexEntry,
    PublicRecipeIndexEntry,
    Recipe,
    Visibility,
    is_accessible,
    resolve_visibility,
)
from src.app.infra.db.base import DocumentKind, DocumentStore

logger = logging.getLogger(__name__)

# Matches the backing store's batch ceiling; bounds requests in flight
DEFAULT_CHUNK_SIZE = 30

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class RecipeAccess:
    def __init__(self, store: DocumentStore, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._store = store
        self.chunk_size = chunk_size

    async def lookup_index(self, recipe_id: str) -> Optional[AccessibleRecipeIndexEntry]:
        """Accessible index first, then the older public-only index."""
        data = await self._store.get(DocumentKind.ACCESSIBLE_RECIPES, recipe_id)
        if data:
            return AccessibleRecipeIndexEntry.from_document(data)

        public_data = await self._store.get(DocumentKind.PUBLIC_RECIPES, recipe_id)
        if public_data:
            public_entry = PublicRecipeIndexEntry.from_document(public_data)
            return AccessibleRecipeIndexEntry(
                recipe_id=public_entry.recipe_id,
                owner_id=public_entry.owner_id,
                visibility=Visibility.PUBLIC,
                updated_at=public_entry.updated_at,
            )
        return None

    async def get_recipe_owner_id(self, recipe_id: str) -> Optional[str]:
        entry = await self.lookup_index(recipe_id)
        return entry.owner_id if entry else None

    async def get_accessible_recipe(self, recipe_id: str) -> Optional[Recipe]:
        """
        Resolve a recipe for any viewer.

        Returns None when there is no index entry, the recipe is gone, the
        recipe is no longer accessible, or the store could not be read.
        """
        try:
            entry = await self.lookup_index(recipe_id)
            if entry is None:
                return None
            data = await self._store.get(
                DocumentKind.RECIPES, recipe_id, owner_id=entry.owner_id
            )
        except BackingStoreUnavailableError as error:
            logger.warning("recipe_access.lookup_failed recipe=%s error=%s", recipe_id, error)
            return None

        if data is None:
            logger.debug("recipe_access.dangling_index recipe=%s owner=%s", recipe_id, entry.owner_id)
            return None
        if not is_accessible(resolve_visibility(data)):
            return None
        return Recipe.from_document({**data, "id": data.get("id") or recipe_id})

    async def fetch_accessible_recipes(self, recipe_ids: Iterable[str]) -> list[Recipe]:
        """
        Resolve many recipes, keeping the given order and silently dropping
        the ones that do not resolve. Items of a chunk are fetched
        concurrently; chunks run one after another.
        """
        ids = [str(rid) for rid in recipe_ids if rid]
        recipes: list[Recipe] = []
        for index, chunk in enumerate(chunked(ids, self.chunk_size)):
            logger.debug("recipe_access.chunk index=%d size=%d", index, len(chunk))
            results = await asyncio.gather(*(self.get_accessible_recipe(rid) for rid in chunk))
            recipes.extend(recipe for recipe in results if recipe is not None)
        return recipes

    async def fetch_owned_recipes(self, owner_id: str, recipe_ids: Iterable[str]) -> list[Recipe]:
        """Owner view: every member the owner still has, whatever its visibility."""
        ids = [str(rid) for rid in recipe_ids if rid]
        recipes: list[Recipe] = []
        for chunk in chunked(ids, self.chunk_size):
            results = await asyncio.gather(
                *(self._get_owned(owner_id, rid) for rid in chunk)
            )
            recipes.extend(recipe for recipe in results if recipe is not None)
        return recipes

    async def _get_owned(self, owner_id: str, recipe_id: str) -> Optional[Recipe]:
        try:
            data = await self._store.get(DocumentKind.RECIPES, recipe_id, owner_id=owner_id)
        except BackingStoreUnavailableError as error:
            logger.warning("recipe_access.owned_lookup_failed recipe=%s error=%s", recipe_id, error)
            return None
        return Recipe.from_document(data) if data else None
