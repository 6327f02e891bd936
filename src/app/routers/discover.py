# src/app/routers/discover.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from src.app.deps import get_discovery_service
from src.app.domain.models import FeedCursor, SortOption
from src.app.schemas.collections import CollectionResponse
from src.app.schemas.discover import DiscoverCollectionsResponse, DiscoverRecipesResponse
from src.app.schemas.recipes import RecipeResponse
from src.app.services.discovery_service import DiscoveryService

router = APIRouter(prefix="/discover", tags=["discover"])


def _int_cursor(cursor: Optional[str]) -> Optional[int]:
    if cursor is None:
        return None
    try:
        return int(cursor)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid cursor")


def _feed_cursor(cursor: Optional[str]) -> Optional[FeedCursor]:
    if cursor is None:
        return None
    try:
        return FeedCursor.decode(cursor)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid cursor")


@router.get("/recipes", response_model=DiscoverRecipesResponse)
async def discover_recipes(
    page_size: Optional[int] = Query(default=None, ge=1, le=100),
    sort_by: SortOption = Query(default=SortOption.RECENT),
    cursor: Optional[str] = Query(default=None),
    service: DiscoveryService = Depends(get_discovery_service),
) -> DiscoverRecipesResponse:
    page = await service.get_public_recipes(
        page_size=page_size, start_after=_feed_cursor(cursor), sort_by=sort_by
    )
    return DiscoverRecipesResponse(
        items=[RecipeResponse.from_recipe(recipe) for recipe in page.items],
        hasMore=page.has_more,
        nextCursor=page.next_cursor.encode() if page.next_cursor else None,
    )


@router.get("/collections", response_model=DiscoverCollectionsResponse)
async def discover_collections(
    page_size: Optional[int] = Query(default=None, ge=1, le=100),
    sort_by: SortOption = Query(default=SortOption.RECENT),
    cursor: Optional[str] = Query(default=None),
    service: DiscoveryService = Depends(get_discovery_service),
) -> DiscoverCollectionsResponse:
    page = await service.get_public_collections(
        page_size=page_size, sort_by=sort_by, offset=_int_cursor(cursor) or 0
    )
    return DiscoverCollectionsResponse(
        items=[CollectionResponse.from_collection(c) for c in page.items],
        hasMore=page.has_more,
        nextCursor=page.next_cursor,
    )
