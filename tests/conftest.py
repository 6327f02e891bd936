from __future__ import annotations

import asyncio
import copy
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

# Settings() is built at import time of src.app.config
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

import pytest

from src.app.domain.errors import BackingStoreUnavailableError, NotFoundError
from src.app.domain.identity import Caller
from src.app.infra.db.base import (
    Document,
    DocumentCallback,
    DocumentKind,
    DocumentStore,
    QueryFilter,
    QueryOptions,
    Unsubscribe,
    require_owner,
)

Key = tuple[DocumentKind, Optional[str], str]


class DocumentStoreStub(DocumentStore):
    """
    In-memory document store.

    - ``fail_on`` maps ``(method, kind)`` (or ``(method, kind, doc_id)``) to
      the number of calls that should raise ``BackingStoreUnavailableError``
      (``None`` = always)
    - ``calls`` records ``(method, kind, doc_id)`` for every call
    - ``max_in_flight`` tracks the largest number of concurrent ``get`` calls
    - ``subscribe_query`` watchers re-run their query after every write to
      their kind and fire when the results differ
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.docs: dict[Key, Document] = {}
        self.calls: list[tuple[str, DocumentKind, Optional[str]]] = []
        self.fail_on: dict[tuple, Optional[int]] = {}
        self.latency = latency
        self.in_flight = 0
        self.max_in_flight = 0
        self.subscribers: dict[Key, list[DocumentCallback]] = {}
        self.query_subscribers: list[QueryWatcher] = []

    # helpers -----------------------------------------------------------
    def seed(self, kind: DocumentKind, document: Document, owner_id: Optional[str] = None) -> None:
        scope = require_owner(kind, owner_id)
        stored = copy.deepcopy(document)
        if scope:
            stored["owner_id"] = scope
        self.docs[(kind, scope, stored["id"])] = stored

    def peek(self, kind: DocumentKind, doc_id: str, owner_id: Optional[str] = None) -> Optional[Document]:
        scope = owner_id if kind.is_owned else None
        document = self.docs.get((kind, scope, doc_id))
        return copy.deepcopy(document) if document is not None else None

    def ids(self, kind: DocumentKind) -> set[str]:
        return {doc_id for (k, _, doc_id) in self.docs if k is kind}

    def writes(self) -> list[tuple[str, DocumentKind, Optional[str]]]:
        return [call for call in self.calls if call[0] in ("set", "update", "delete", "increment")]

    def fail(self, method: str, kind: DocumentKind, doc_id: Optional[str] = None, times: Optional[int] = None) -> None:
        key = (method, kind) if doc_id is None else (method, kind, doc_id)
        self.fail_on[key] = times

    def _maybe_fail(self, method: str, kind: DocumentKind, doc_id: Optional[str]) -> None:
        for key in ((method, kind, doc_id), (method, kind)):
            if key not in self.fail_on:
                continue
            remaining = self.fail_on[key]
            if remaining is not None:
                if remaining <= 0:
                    continue
                self.fail_on[key] = remaining - 1
            raise BackingStoreUnavailableError(f"{method} {kind.value}", "injected failure")

    def _notify(self, key: Key) -> None:
        document = self.docs.get(key)
        for callback in list(self.subscribers.get(key, [])):
            callback(copy.deepcopy(document) if document is not None else None)
        for watcher in list(self.query_subscribers):
            if watcher.kind is key[0] and watcher.scope == key[1]:
                self._refresh(watcher)

    # DocumentStore -----------------------------------------------------
    async def get(self, kind, doc_id, *, owner_id=None):
        scope = require_owner(kind, owner_id)
        self.calls.append(("get", kind, doc_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            self._maybe_fail("get", kind, doc_id)
            document = self.docs.get((kind, scope, doc_id))
            return copy.deepcopy(document) if document is not None else None
        finally:
            self.in_flight -= 1

    async def set(self, kind, doc_id, document, *, owner_id=None):
        scope = require_owner(kind, owner_id)
        self.calls.append(("set", kind, doc_id))
        self._maybe_fail("set", kind, doc_id)
        stored = {**copy.deepcopy(document), "id": doc_id}
        if scope:
            stored["owner_id"] = scope
        self.docs[(kind, scope, doc_id)] = stored
        self._notify((kind, scope, doc_id))

    async def update(self, kind, doc_id, changes, *, owner_id=None):
        scope = require_owner(kind, owner_id)
        self.calls.append(("update", kind, doc_id))
        self._maybe_fail("update", kind, doc_id)
        key = (kind, scope, doc_id)
        if key not in self.docs:
            raise NotFoundError(kind.value, doc_id)
        self.docs[key].update(copy.deepcopy(changes))
        self._notify(key)

    async def delete(self, kind, doc_id, *, owner_id=None):
        scope = require_owner(kind, owner_id)
        self.calls.append(("delete", kind, doc_id))
        self._maybe_fail("delete", kind, doc_id)
        self.docs.pop((kind, scope, doc_id), None)
        self._notify((kind, scope, doc_id))

    async def query(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter] = (),
        options: QueryOptions = QueryOptions(),
        *,
        owner_id: Optional[str] = None,
    ) -> list[Document]:
        scope = require_owner(kind, owner_id)
        self.calls.append(("query", kind, None))
        self._maybe_fail("query", kind, None)
        return self._select(kind, filters, options, scope)

    def _select(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter],
        options: QueryOptions,
        scope: Optional[str],
    ) -> list[Document]:
        results = [
            copy.deepcopy(doc)
            for (k, s, _), doc in self.docs.items()
            if k is kind and s == scope and all(_matches(doc, f) for f in filters)
        ]
        if options.order_by:
            field = options.order_by

            def position(doc: Document) -> tuple:
                return (doc.get(field) or 0, doc.get("id") or "")

            results.sort(key=position, reverse=options.descending)
            if options.start_after is not None:
                if options.start_after_id is not None:
                    cursor = (options.start_after, options.start_after_id)
                    key = position
                else:
                    cursor = options.start_after
                    key = lambda doc: doc.get(field) or 0
                if options.descending:
                    results = [d for d in results if key(d) < cursor]
                else:
                    results = [d for d in results if key(d) > cursor]
        if options.limit is not None:
            results = results[: options.limit]
        return results

    async def increment(self, kind, doc_id, field, amount=1, *, owner_id=None):
        scope = require_owner(kind, owner_id)
        self.calls.append(("increment", kind, doc_id))
        self._maybe_fail("increment", kind, doc_id)
        key = (kind, scope, doc_id)
        if key not in self.docs:
            raise NotFoundError(kind.value, doc_id)
        target: dict[str, Any] = self.docs[key]
        *parents, leaf = field.split(".")
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = (target.get(leaf) or 0) + amount
        self._notify(key)

    def subscribe(self, kind, doc_id, callback, *, owner_id=None) -> Unsubscribe:
        scope = require_owner(kind, owner_id)
        key = (kind, scope, doc_id)
        self.subscribers.setdefault(key, []).append(callback)
        self._notify_one(key, callback)

        def unsubscribe() -> None:
            if callback in self.subscribers.get(key, []):
                self.subscribers[key].remove(callback)

        return unsubscribe

    def _notify_one(self, key: Key, callback: DocumentCallback) -> None:
        document = self.docs.get(key)
        callback(copy.deepcopy(document) if document is not None else None)

    def subscribe_query(self, kind, filters, callback, options=QueryOptions(), *, owner_id=None) -> Unsubscribe:
        scope = require_owner(kind, owner_id)
        watcher = QueryWatcher(kind, scope, list(filters), options, callback)
        self.query_subscribers.append(watcher)
        self._refresh(watcher)

        def unsubscribe() -> None:
            if watcher in self.query_subscribers:
                self.query_subscribers.remove(watcher)

        return unsubscribe

    def _refresh(self, watcher: "QueryWatcher") -> None:
        results = self._select(watcher.kind, watcher.filters, watcher.options, watcher.scope)
        if results != watcher.last:
            watcher.last = results
            watcher.callback(copy.deepcopy(results))


@dataclass(eq=False)
class QueryWatcher:
    kind: DocumentKind
    scope: Optional[str]
    filters: list[QueryFilter]
    options: QueryOptions
    callback: Callable[[list[Document]], None]
    last: Optional[list[Document]] = None


def _matches(document: Document, query_filter: QueryFilter) -> bool:
    value = document.get(query_filter.field)
    if query_filter.op == "==":
        return value == query_filter.value
    if query_filter.op == "array-contains":
        return isinstance(value, list) and query_filter.value in value
    raise ValueError(f"unsupported op {query_filter.op}")


class FixedClock:
    """Deterministic clock; every call advances one second."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


def recipe_doc(
    recipe_id: str,
    owner_id: str = "alice",
    *,
    title: str = "Soup",
    visibility: Optional[str] = "private",
    is_public: Optional[bool] = None,
    views: int = 0,
    updated_at: str = "2024-01-01T00:00:00+00:00",
) -> Document:
    document: Document = {
        "id": recipe_id,
        "owner_id": owner_id,
        "title": title,
        "share_stats": {"views": views, "copies": 0},
        "content": {},
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": updated_at,
    }
    if visibility is not None:
        document["visibility"] = visibility
    if is_public is not None:
        document["is_public"] = is_public
    return document


def collection_doc(
    collection_id: str,
    owner_id: str = "alice",
    *,
    name: str = "Weeknight",
    visibility: Optional[str] = "private",
    is_public: Optional[bool] = None,
    recipe_ids: Optional[list[str]] = None,
    views: int = 0,
    updated_at: str = "2024-01-01T00:00:00+00:00",
) -> Document:
    document: Document = {
        "id": collection_id,
        "owner_id": owner_id,
        "name": name,
        "recipe_ids": list(recipe_ids or []),
        "stats": {"views": views, "recipes_copied": 0},
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": updated_at,
    }
    if visibility is not None:
        document["visibility"] = visibility
    if is_public is not None:
        document["is_public"] = is_public
    return document


def index_docs(recipe_id: str, owner_id: str, visibility: str, title: str = "Soup", views: int = 0) -> dict[DocumentKind, Document]:
    """Index entries matching a recipe of the given visibility."""
    entries: dict[DocumentKind, Document] = {}
    if visibility in ("unlisted", "public"):
        entries[DocumentKind.ACCESSIBLE_RECIPES] = {
            "id": recipe_id,
            "recipe_id": recipe_id,
            "owner_id": owner_id,
            "visibility": visibility,
            "updated_at": "2024-01-01T00:00:00+00:00",
        }
    if visibility == "public":
        entries[DocumentKind.PUBLIC_RECIPES] = {
            "id": recipe_id,
            "recipe_id": recipe_id,
            "owner_id": owner_id,
            "title": title,
            "views": views,
            "updated_at": "2024-01-01T00:00:00+00:00",
        }
    return entries


def seed_recipe(store: DocumentStoreStub, recipe_id: str, owner_id: str = "alice", visibility: str = "private", **kwargs: Any) -> None:
    store.seed(DocumentKind.RECIPES, recipe_doc(recipe_id, owner_id, visibility=visibility, **kwargs), owner_id=owner_id)
    for kind, entry in index_docs(recipe_id, owner_id, visibility, title=kwargs.get("title", "Soup"), views=kwargs.get("views", 0)).items():
        store.seed(kind, entry)


@pytest.fixture
def store() -> DocumentStoreStub:
    return DocumentStoreStub()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def alice() -> Caller:
    return Caller("alice")


@pytest.fixture
def bob() -> Caller:
    return Caller("bob")
