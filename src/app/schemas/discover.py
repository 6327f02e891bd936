# src/app/schemas/discover.py
from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field

from src.app.schemas.collections import CollectionResponse
from src.app.schemas.recipes import RecipeResponse

Cursor = Optional[Union[int, str]]


class DiscoverRecipesResponse(BaseModel):
    items: list[RecipeResponse] = Field(default_factory=list)
    hasMore: bool = False
    nextCursor: Cursor = None


class DiscoverCollectionsResponse(BaseModel):
    items: list[CollectionResponse] = Field(default_factory=list)
    hasMore: bool = False
    nextCursor: Cursor = None
