# src/app/infra/db/base.py
"""
Abstract base class for the document store backing recipes, collections
and their lookup indexes.
This interface allows easy swapping between different storage backends.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Literal, Optional, Sequence

Document = dict[str, Any]
DocumentCallback = Callable[[Optional[Document]], None]
QueryCallback = Callable[[list[Document]], None]
Unsubscribe = Callable[[], None]

FilterOp = Literal["==", "array-contains"]


class DocumentKind(str, Enum):
    """Document kinds. Owned kinds live inside their owner's space."""
    RECIPES = "recipes"
    SETTINGS = "settings"
    COLLECTIONS = "collections"
    ACCESSIBLE_RECIPES = "accessible_recipes"
    PUBLIC_RECIPES = "public_recipes"

    @property
    def is_owned(self) -> bool:
        return self in (DocumentKind.RECIPES, DocumentKind.SETTINGS)


@dataclass(frozen=True)
class QueryFilter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class QueryOptions:
    order_by: Optional[str] = None
    descending: bool = True
    limit: Optional[int] = None
    start_after: Any = None
    # id of the cursor document; breaks ties on the order_by value
    start_after_id: Optional[str] = None


def require_owner(kind: DocumentKind, owner_id: Optional[str]) -> Optional[str]:
    """Owned kinds must always be addressed through an owner id."""
    if kind.is_owned and not owner_id:
        raise ValueError(f"owner_id is required for {kind.value} documents")
    return owner_id if kind.is_owned else None


class DocumentStore(ABC):
    """
    Abstract interface for document storage.

    Owned kinds (recipes, settings) are scoped by ``owner_id``; shared kinds
    (collections and the two recipe indexes) are globally addressable by id.
    No operation spans more than one document.

    Implementations:
    - SupabaseDocumentStore: Postgres tables through the Supabase client
    """

    @abstractmethod
    async def get(
        self,
        kind: DocumentKind,
        doc_id: str,
        *,
        owner_id: Optional[str] = None,
    ) -> Optional[Document]:
        """
        Fetch a single document by id.

        Returns:
            The document, or None if it does not exist
        """
        pass

    @abstractmethod
    async def set(
        self,
        kind: DocumentKind,
        doc_id: str,
        document: Document,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        """Create or overwrite a document."""
        pass

    @abstractmethod
    async def update(
        self,
        kind: DocumentKind,
        doc_id: str,
        changes: Document,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        """
        Apply a partial update to an existing document.

        Raises:
            NotFoundError: If the document does not exist
        """
        pass

    @abstractmethod
    async def delete(
        self,
        kind: DocumentKind,
        doc_id: str,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def query(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter] = (),
        options: QueryOptions = QueryOptions(),
        *,
        owner_id: Optional[str] = None,
    ) -> list[Document]:
        """
        Run a predicate query. All filters must match.

        Args:
            kind: Document kind to query
            filters: Conjunction of field predicates
            options: Ordering, limit and cursor. Results are ordered by
                ``order_by`` then ``id`` in the same direction. ``start_after``
                is a value of the ``order_by`` field; with ``start_after_id``
                the cursor is the (value, id) pair of the last document seen
            owner_id: Required for owned kinds

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    async def increment(
        self,
        kind: DocumentKind,
        doc_id: str,
        field: str,
        amount: int = 1,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        """
        Atomically add ``amount`` to a numeric field on the server side.
        ``field`` may be a dotted path into a nested object (``stats.views``).
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        kind: DocumentKind,
        doc_id: str,
        callback: DocumentCallback,
        *,
        owner_id: Optional[str] = None,
    ) -> Unsubscribe:
        """
        Watch a single document. ``callback`` receives the new document, or
        None once it is deleted. Delivery order across documents is not
        guaranteed.

        Returns:
            A function that stops the subscription
        """
        pass

    @abstractmethod
    def subscribe_query(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter],
        callback: QueryCallback,
        options: QueryOptions = QueryOptions(),
        *,
        owner_id: Optional[str] = None,
    ) -> Unsubscribe:
        """
        Watch the result set of a predicate query. ``callback`` receives the
        whole result list, first with the current matches and then each time
        the set or any matching document changes.

        Returns:
            A function that stops the subscription
        """
        pass
