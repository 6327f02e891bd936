# src/app/schemas/collections.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.app.domain.models import Collection, Visibility, VisibilityChange
from src.app.domain.timestamps import format_timestamp
from src.app.schemas.recipes import RecipeResponse

_UPDATE_FIELDS = {
    "name": "name",
    "description": "description",
    "visibility": "visibility",
    "isPublic": "is_public",
    "coverImage": "cover_image",
    "ownerName": "owner_name",
    "ownerAvatar": "owner_avatar",
}


class CollectionStatsResponse(BaseModel):
    views: int = 0
    recipesCopied: int = 0


class CollectionResponse(BaseModel):
    id: str
    ownerId: str
    ownerName: Optional[str] = None
    ownerAvatar: Optional[str] = None
    name: str
    description: Optional[str] = None
    visibility: Visibility
    isPublic: bool
    recipeIds: list[str] = Field(default_factory=list)
    coverImage: Optional[str] = None
    stats: CollectionStatsResponse = Field(default_factory=CollectionStatsResponse)
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @classmethod
    def from_collection(cls, collection: Collection) -> "CollectionResponse":
        visibility = collection.resolved_visibility
        return cls(
            id=collection.id,
            ownerId=collection.owner_id,
            ownerName=collection.owner_name,
            ownerAvatar=collection.owner_avatar,
            name=collection.name,
            description=collection.description,
            visibility=visibility,
            isPublic=visibility is not Visibility.PRIVATE,
            recipeIds=list(collection.recipe_ids),
            coverImage=collection.cover_image,
            stats=CollectionStatsResponse(
                views=collection.stats.views,
                recipesCopied=collection.stats.recipes_copied,
            ),
            createdAt=format_timestamp(collection.created_at),
            updatedAt=format_timestamp(collection.updated_at),
        )


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    visibility: Visibility = Visibility.PRIVATE


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    visibility: Optional[Visibility] = None
    isPublic: Optional[bool] = None
    coverImage: Optional[str] = None
    ownerName: Optional[str] = None
    ownerAvatar: Optional[str] = None

    def to_changes(self) -> dict[str, Any]:
        payload = self.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        return {_UPDATE_FIELDS[key]: value for key, value in payload.items()}


class CollectionAppendRequest(BaseModel):
    recipeId: str = Field(..., min_length=1)


class CollectionReorderRequest(BaseModel):
    recipeIds: list[str]


class VisibilityChangeResponse(BaseModel):
    recipeVisibilityChanged: bool = False
    newVisibility: Optional[Visibility] = None

    @classmethod
    def from_change(cls, change: VisibilityChange) -> "VisibilityChangeResponse":
        return cls(
            recipeVisibilityChanged=change.recipe_visibility_changed,
            newVisibility=change.new_visibility,
        )


class CollectionDetail(BaseModel):
    collection: CollectionResponse
    recipes: list[RecipeResponse] = Field(default_factory=list)


class CounterResponse(BaseModel):
    counted: bool
