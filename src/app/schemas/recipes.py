# src/app/schemas/recipes.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.app.domain.models import Recipe, Visibility
from src.app.domain.timestamps import format_timestamp

# camelCase on the wire -> snake_case document fields
_UPDATE_FIELDS = {
    "title": "title",
    "image": "image",
    "content": "content",
    "visibility": "visibility",
    "isPublic": "is_public",
}


class ShareStatsResponse(BaseModel):
    views: int = 0
    copies: int = 0


class RecipeResponse(BaseModel):
    id: str
    ownerId: str
    title: str
    visibility: Visibility
    isPublic: bool
    sharedAt: Optional[str] = None
    shareStats: ShareStatsResponse = Field(default_factory=ShareStatsResponse)
    image: Optional[str] = None
    content: dict[str, Any] = Field(default_factory=dict)
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @classmethod
    def from_recipe(cls, recipe: Recipe) -> "RecipeResponse":
        visibility = recipe.resolved_visibility
        return cls(
            id=recipe.id,
            ownerId=recipe.owner_id,
            title=recipe.title,
            visibility=visibility,
            isPublic=visibility is not Visibility.PRIVATE,
            sharedAt=format_timestamp(recipe.shared_at),
            shareStats=ShareStatsResponse(
                views=recipe.share_stats.views,
                copies=recipe.share_stats.copies,
            ),
            image=recipe.image,
            content=recipe.content,
            createdAt=format_timestamp(recipe.created_at),
            updatedAt=format_timestamp(recipe.updated_at),
        )


class RecipeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    image: Optional[str] = None
    content: dict[str, Any] = Field(default_factory=dict)
    visibility: Visibility = Visibility.PRIVATE


class RecipeUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    image: Optional[str] = None
    content: Optional[dict[str, Any]] = None
    visibility: Optional[Visibility] = None
    isPublic: Optional[bool] = None  # legacy clients

    def to_changes(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        return {_UPDATE_FIELDS[key]: value for key, value in payload.items()}


class VisibilityUpdate(BaseModel):
    visibility: Visibility
    confirm: bool = False
