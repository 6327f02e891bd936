# src/app/services/discovery_service.py
"""
Discovery feeds: public recipes and public collections.

Recipes are listed from the public index and resolved one by one through
the accessible read path. Collections have no index; they come from two
predicate queries (current ``visibility`` field and legacy ``is_public``
flag) merged in memory, so their feed only covers the first
``fetch_ceiling`` matches of each query.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Iterable, Optional

from src.app.domain.errors import BackingStoreUnavailableError
from src.app.domain.models import (
    Collection,
    DiscoverPage,
    FeedCursor,
    PublicRecipeIndexEntry,
    Recipe,
    SortOption,
    Visibility,
    is_discoverable,
    resolve_visibility,
)
from src.app.domain.timestamps import EPOCH
from src.app.infra.db.base import (
    Document,
    DocumentKind,
    DocumentStore,
    QueryFilter,
    QueryOptions,
)
from src.app.services.recipe_access import RecipeAccess

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
DEFAULT_FETCH_CEILING = 100

_RECIPE_SORT_FIELDS = {
    SortOption.RECENT: "updated_at",
    SortOption.POPULAR: "views",
}


def merge_by_id(*sources: Iterable[Document]) -> list[Document]:
    """
    Concatenate documents, keeping the first one seen for each id.
    Pass the current-schema results first so they win over legacy ones.
    """
    merged: "OrderedDict[str, Document]" = OrderedDict()
    for source in sources:
        for document in source:
            doc_id = document.get("id")
            if doc_id is None or doc_id in merged:
                continue
            merged[doc_id] = document
    return list(merged.values())


def _collection_sort_key(sort_by: SortOption):
    if sort_by is SortOption.POPULAR:
        return lambda c: c.stats.views
    return lambda c: c.updated_at or EPOCH


class DiscoveryService:
    def __init__(
        self,
        store: DocumentStore,
        access: Optional[RecipeAccess] = None,
        fetch_ceiling: int = DEFAULT_FETCH_CEILING,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._store = store
        self._access = access or RecipeAccess(store)
        self.fetch_ceiling = fetch_ceiling
        self.default_page_size = default_page_size

    async def get_public_recipes(
        self,
        page_size: Optional[int] = None,
        start_after: Optional[FeedCursor] = None,
        sort_by: SortOption = SortOption.RECENT,
    ) -> DiscoverPage[Recipe]:
        """
        One page of public recipes, newest or most viewed first.

        Args:
            page_size: Entries per page
            start_after: ``next_cursor`` of the previous page, a ``FeedCursor``
                holding the last entry's sort value and id
            sort_by: ``recent`` (index ``updated_at``) or ``popular`` (index ``views``)

        Returns:
            The resolved recipes. Entries whose recipe no longer resolves are
            dropped, so a page can be shorter than ``page_size`` while
            ``has_more`` is still true.
        """
        page_size = page_size or self.default_page_size
        sort_field = _RECIPE_SORT_FIELDS[SortOption(sort_by)]
        try:
            documents = await self._store.query(
                DocumentKind.PUBLIC_RECIPES,
                options=QueryOptions(
                    order_by=sort_field,
                    descending=True,
                    limit=page_size + 1,
                    start_after=start_after.value if start_after else None,
                    start_after_id=start_after.doc_id if start_after else None,
                ),
            )
        except BackingStoreUnavailableError as error:
            logger.warning("discover.recipes_failed sort=%s error=%s", sort_field, error)
            return DiscoverPage(items=[])

        has_more = len(documents) > page_size
        page = documents[:page_size]
        entries = [PublicRecipeIndexEntry.from_document(doc) for doc in page]

        results = await asyncio.gather(
            *(self._access.get_accessible_recipe(entry.recipe_id) for entry in entries)
        )
        recipes = [recipe for recipe in results if recipe is not None]
        if len(recipes) < len(entries):
            logger.debug("discover.recipes_dropped count=%d", len(entries) - len(recipes))

        next_cursor = FeedCursor(page[-1].get(sort_field), page[-1]["id"]) if page else None
        return DiscoverPage(items=recipes, has_more=has_more, next_cursor=next_cursor)

    async def get_public_collections(
        self,
        page_size: Optional[int] = None,
        sort_by: SortOption = SortOption.RECENT,
        offset: int = 0,
    ) -> DiscoverPage[Collection]:
        """
        One page of public collections, sorted in memory. ``next_cursor`` is
        the offset of the following page within the merged results.
        """
        page_size = page_size or self.default_page_size
        sort_by = SortOption(sort_by)
        options = QueryOptions(limit=self.fetch_ceiling)
        try:
            current_schema, legacy_schema = await asyncio.gather(
                self._store.query(
                    DocumentKind.COLLECTIONS,
                    [QueryFilter("visibility", "==", Visibility.PUBLIC.value)],
                    options,
                ),
                self._store.query(
                    DocumentKind.COLLECTIONS,
                    [QueryFilter("is_public", "==", True)],
                    options,
                ),
            )
        except BackingStoreUnavailableError as error:
            logger.warning("discover.collections_failed error=%s", error)
            return DiscoverPage(items=[])

        logger.debug(
            "discover.collections_fetched current=%d legacy=%d",
            len(current_schema),
            len(legacy_schema),
        )
        collections = [
            Collection.from_document(doc)
            for doc in merge_by_id(current_schema, legacy_schema)
            if is_discoverable(resolve_visibility(doc))
        ]
        collections.sort(key=_collection_sort_key(sort_by), reverse=True)

        offset = max(0, offset)
        end = offset + page_size
        has_more = len(collections) > end
        return DiscoverPage(
            items=collections[offset:end],
            has_more=has_more,
            next_cursor=end if has_more else None,
        )
