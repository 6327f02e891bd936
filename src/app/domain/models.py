# src/app/domain/models.py
"""
Domain models for recipe and collection sharing.
These are pure data structures with no infrastructure dependencies.

Documents travel as snake_case dicts. Any reader that needs a visibility
must go through ``resolve_visibility``: older documents only carry the
legacy ``is_public`` boolean.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from src.app.domain.timestamps import format_timestamp, parse_datetime

T = TypeVar("T")


class Visibility(str, Enum):
    """Access tier of a recipe or collection."""
    PRIVATE = "private"
    UNLISTED = "unlisted"
    PUBLIC = "public"


class SortOption(str, Enum):
    """Ordering of the discovery feeds."""
    RECENT = "recent"
    POPULAR = "popular"


def _coerce_visibility(value: Any) -> Optional[Visibility]:
    if value is None or isinstance(value, Visibility):
        return value
    try:
        return Visibility(str(value))
    except ValueError:
        return None


def is_accessible(visibility: Any) -> bool:
    """Viewable through a direct reference (unlisted or public)."""
    return _coerce_visibility(visibility) in (Visibility.UNLISTED, Visibility.PUBLIC)


def is_discoverable(visibility: Any) -> bool:
    """Listed in discovery feeds (public only)."""
    return _coerce_visibility(visibility) is Visibility.PUBLIC


def migrate_visibility(is_public: Optional[bool]) -> Visibility:
    """Map the legacy boolean onto a tier. Never produces ``unlisted``."""
    return Visibility.PUBLIC if is_public is True else Visibility.PRIVATE


def legacy_is_public(visibility: Visibility) -> bool:
    """Value written to ``is_public`` next to every visibility write."""
    return is_accessible(visibility)


def resolve_visibility(document: Any) -> Visibility:
    """``visibility ?? migrate_visibility(is_public)`` for dicts and domain objects."""
    if document is None:
        return Visibility.PRIVATE
    if isinstance(document, dict):
        raw_visibility = document.get("visibility")
        raw_is_public = document.get("is_public")
    else:
        raw_visibility = getattr(document, "visibility", None)
        raw_is_public = getattr(document, "is_public", None)
    visibility = _coerce_visibility(raw_visibility)
    if visibility is not None:
        return visibility
    return migrate_visibility(raw_is_public)


def _counter(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


@dataclass
class ShareStats:
    views: int = 0
    copies: int = 0

    @classmethod
    def from_document(cls, data: Any) -> "ShareStats":
        data = data if isinstance(data, dict) else {}
        return cls(views=_counter(data.get("views")), copies=_counter(data.get("copies")))

    def to_document(self) -> dict[str, int]:
        return {"views": self.views, "copies": self.copies}


@dataclass
class CollectionStats:
    views: int = 0
    recipes_copied: int = 0

    @classmethod
    def from_document(cls, data: Any) -> "CollectionStats":
        data = data if isinstance(data, dict) else {}
        return cls(
            views=_counter(data.get("views")),
            recipes_copied=_counter(data.get("recipes_copied")),
        )

    def to_document(self) -> dict[str, int]:
        return {"views": self.views, "recipes_copied": self.recipes_copied}


@dataclass
class Recipe:
    """
    A recipe owned by exactly one user.

    ``content`` holds the recipe body (ingredients, steps, nutrition...),
    which this service stores and returns untouched.
    """
    id: str
    owner_id: str
    title: str = ""
    visibility: Optional[Visibility] = None
    is_public: Optional[bool] = None
    shared_at: Optional[datetime] = None
    share_stats: ShareStats = field(default_factory=ShareStats)
    image: Optional[str] = None
    content: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def resolved_visibility(self) -> Visibility:
        return resolve_visibility(self)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Recipe":
        return cls(
            id=str(data["id"]),
            owner_id=str(data.get("owner_id") or ""),
            title=str(data.get("title") or ""),
            visibility=_coerce_visibility(data.get("visibility")),
            is_public=data.get("is_public"),
            shared_at=parse_datetime(data.get("shared_at")),
            share_stats=ShareStats.from_document(data.get("share_stats")),
            image=data.get("image"),
            content=dict(data.get("content") or {}),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "visibility": self.visibility.value if self.visibility else None,
            "is_public": self.is_public,
            "shared_at": format_timestamp(self.shared_at),
            "share_stats": self.share_stats.to_document(),
            "image": self.image,
            "content": dict(self.content),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class Collection:
    """A curated, ordered list of recipe ids; may reference other users' recipes."""
    id: str
    owner_id: str
    name: str
    visibility: Optional[Visibility] = None
    is_public: Optional[bool] = None
    recipe_ids: list[str] = field(default_factory=list)
    description: Optional[str] = None
    owner_name: Optional[str] = None
    owner_avatar: Optional[str] = None
    cover_image: Optional[str] = None
    stats: CollectionStats = field(default_factory=CollectionStats)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def resolved_visibility(self) -> Visibility:
        return resolve_visibility(self)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Collection":
        return cls(
            id=str(data["id"]),
            owner_id=str(data.get("owner_id") or ""),
            name=str(data.get("name") or ""),
            visibility=_coerce_visibility(data.get("visibility")),
            is_public=data.get("is_public"),
            recipe_ids=[str(rid) for rid in data.get("recipe_ids") or []],
            description=data.get("description"),
            owner_name=data.get("owner_name"),
            owner_avatar=data.get("owner_avatar"),
            cover_image=data.get("cover_image"),
            stats=CollectionStats.from_document(data.get("stats")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "visibility": self.visibility.value if self.visibility else None,
            "is_public": self.is_public,
            "recipe_ids": list(self.recipe_ids),
            "stats": self.stats.to_document(),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }
        # optional fields are omitted rather than written as null
        for key in ("description", "owner_name", "owner_avatar", "cover_image"):
            value = getattr(self, key)
            if value is not None:
                document[key] = value
        return document


@dataclass
class AccessibleRecipeIndexEntry:
    """One per recipe whose visibility is unlisted or public."""
    recipe_id: str
    owner_id: str
    visibility: Visibility
    updated_at: datetime

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "AccessibleRecipeIndexEntry":
        return cls(
            recipe_id=str(data.get("recipe_id") or data["id"]),
            owner_id=str(data["owner_id"]),
            visibility=_coerce_visibility(data.get("visibility")) or Visibility.UNLISTED,
            updated_at=parse_datetime(data.get("updated_at")) or parse_datetime(0),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.recipe_id,
            "recipe_id": self.recipe_id,
            "owner_id": self.owner_id,
            "visibility": self.visibility.value,
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class PublicRecipeIndexEntry:
    """One per public recipe. ``views`` mirrors the recipe counter for sorting."""
    recipe_id: str
    owner_id: str
    title: str
    updated_at: datetime
    image: Optional[str] = None
    views: int = 0

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "PublicRecipeIndexEntry":
        return cls(
            recipe_id=str(data.get("recipe_id") or data["id"]),
            owner_id=str(data["owner_id"]),
            title=str(data.get("title") or ""),
            updated_at=parse_datetime(data.get("updated_at")) or parse_datetime(0),
            image=data.get("image"),
            views=_counter(data.get("views")),
        )

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "id": self.recipe_id,
            "recipe_id": self.recipe_id,
            "owner_id": self.owner_id,
            "title": self.title,
            "views": self.views,
            "updated_at": format_timestamp(self.updated_at),
        }
        if self.image:
            document["image"] = self.image
        return document


@dataclass
class VisibilityChange:
    """Outcome of adding a recipe to a collection."""
    recipe_visibility_changed: bool = False
    new_visibility: Optional[Visibility] = None


@dataclass(frozen=True)
class FeedCursor:
    """
    Position after the last entry of a recipe feed page: its sort value and
    id. The id orders entries that share a sort value.
    """
    value: Any
    doc_id: str

    def encode(self) -> str:
        raw = json.dumps([self.value, self.doc_id], separators=(",", ":"))
        return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> "FeedCursor":
        """Raises ValueError for anything ``encode`` did not produce."""
        try:
            value, doc_id = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        except (binascii.Error, UnicodeError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid feed cursor: {token!r}") from exc
        if not isinstance(doc_id, str) or not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValueError(f"invalid feed cursor: {token!r}")
        return cls(value, doc_id)


@dataclass
class DiscoverPage(Generic[T]):
    """One page of a discovery feed."""
    items: list[T]
    has_more: bool = False
    next_cursor: Any = None


@dataclass
class UserPreferences:
    hide_built_in_recipes: bool = False
