from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from starlette.concurrency import run_in_threadpool
from supabase import Client, create_client

from src.app.domain.errors import BackingStoreUnavailableError, NotFoundError
from src.app.infra.db.base import (
    Document,
    DocumentCallback,
    DocumentKind,
    DocumentStore,
    QueryFilter,
    QueryCallback,
    QueryOptions,
    Unsubscribe,
    require_owner,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
INCREMENT_RPC = "increment_document_counter"

_STORE_ERRORS = (APIError, httpx.HTTPError, ConnectionError, TimeoutError)
_UNSET = object()


def _create_supabase_client() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


def _filter_literal(value: Any) -> str:
    """Double-quote a value for a PostgREST logic filter (timestamps carry ``.`` and ``:``)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class SupabaseDocumentStore(DocumentStore):
    """
    Each document kind is a table keyed by ``id``. Owned tables carry an
    ``owner_id`` column that every statement filters on. The supabase client
    is synchronous, so every call runs in the threadpool.
    """

    def __init__(
        self,
        client: Client | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self._client = client or _create_supabase_client()
        self._poll_interval = poll_interval_seconds
        self._watchers: set[asyncio.Task[None]] = set()
        logger.info("SupabaseDocumentStore initialized")

    async def get(
        self,
        kind: DocumentKind,
        doc_id: str,
        *,
        owner_id: Optional[str] = None,
    ) -> Optional[Document]:
        scope = require_owner(kind, owner_id)
        return await self._run(f"get {kind.value}", self._get_sync, kind, doc_id, scope)

    async def set(
        self,
        kind: DocumentKind,
        doc_id: str,
        document: Document,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        scope = require_owner(kind, owner_id)
        row = {**document, "id": doc_id}
        if scope:
            row["owner_id"] = scope
        await self._run(f"set {kind.value}", self._upsert_sync, kind, row)

    async def update(
        self,
        kind: DocumentKind,
        doc_id: str,
        changes: Document,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        scope = require_owner(kind, owner_id)
        rows = await self._run(
            f"update {kind.value}", self._update_sync, kind, doc_id, changes, scope
        )
        if not rows:
            raise NotFoundError(kind.value, doc_id)

    async def delete(
        self,
        kind: DocumentKind,
        doc_id: str,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        scope = require_owner(kind, owner_id)
        await self._run(f"delete {kind.value}", self._delete_sync, kind, doc_id, scope)

    async def query(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter] = (),
        options: QueryOptions = QueryOptions(),
        *,
        owner_id: Optional[str] = None,
    ) -> list[Document]:
        scope = require_owner(kind, owner_id)
        return await self._run(
            f"query {kind.value}", self._query_sync, kind, list(filters), options, scope
        )

    async def increment(
        self,
        kind: DocumentKind,
        doc_id: str,
        field: str,
        amount: int = 1,
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        scope = require_owner(kind, owner_id)
        payload = {
            "p_table": kind.value,
            "p_id": doc_id,
            "p_owner_id": scope,
            "p_field": field,
            "p_amount": amount,
        }
        await self._run(f"increment {kind.value}.{field}", self._rpc_sync, INCREMENT_RPC, payload)

    def subscribe(
        self,
        kind: DocumentKind,
        doc_id: str,
        callback: DocumentCallback,
        *,
        owner_id: Optional[str] = None,
    ) -> Unsubscribe:
        scope = require_owner(kind, owner_id)
        return self._start_watch(
            f"{kind.value}-{doc_id}",
            lambda: self.get(kind, doc_id, owner_id=scope),
            callback,
        )

    def subscribe_query(
        self,
        kind: DocumentKind,
        filters: Sequence[QueryFilter],
        callback: QueryCallback,
        options: QueryOptions = QueryOptions(),
        *,
        owner_id: Optional[str] = None,
    ) -> Unsubscribe:
        scope = require_owner(kind, owner_id)
        filters = list(filters)
        return self._start_watch(
            f"{kind.value}-query",
            lambda: self.query(kind, filters, options, owner_id=scope),
            callback,
        )

    def _start_watch(
        self,
        target: str,
        fetch: Callable[[], Awaitable[Any]],
        callback: Callable[[Any], None],
    ) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(
            self._watch(target, fetch, callback),
            name=f"watch-{target}",
        )
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def close(self) -> None:
        watchers = list(self._watchers)
        for task in watchers:
            task.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)
        self._watchers.clear()

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await run_in_threadpool(func, *args)
        except _STORE_ERRORS as error:
            logger.error("Backing store error during %s: %s", operation, error)
            raise BackingStoreUnavailableError(operation, str(error)) from error

    async def _watch(
        self,
        target: str,
        fetch: Callable[[], Awaitable[Any]],
        callback: Callable[[Any], None],
    ) -> None:
        last: Any = _UNSET
        while True:
            try:
                current = await fetch()
            except BackingStoreUnavailableError as error:
                logger.warning("store.watch_failed target=%s error=%s", target, error)
            else:
                if current != last:
                    last = current
                    try:
                        callback(current)
                    except Exception:
                        logger.exception("store.watch_callback_failed target=%s", target)
            await asyncio.sleep(self._poll_interval)

    def _table(self, kind: DocumentKind):
        return self._client.table(kind.value)

    @staticmethod
    def _scoped(builder, owner_id: Optional[str]):
        return builder.eq("owner_id", owner_id) if owner_id else builder

    def _get_sync(self, kind: DocumentKind, doc_id: str, owner_id: Optional[str]) -> Optional[Document]:
        builder = self._scoped(self._table(kind).select("*").eq("id", doc_id), owner_id)
        response = builder.limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def _upsert_sync(self, kind: DocumentKind, row: Document) -> None:
        self._table(kind).upsert(row).execute()

    def _update_sync(
        self,
        kind: DocumentKind,
        doc_id: str,
        changes: Document,
        owner_id: Optional[str],
    ) -> list[Document]:
        builder = self._scoped(self._table(kind).update(changes).eq("id", doc_id), owner_id)
        response = builder.execute()
        return response.data or []

    def _delete_sync(self, kind: DocumentKind, doc_id: str, owner_id: Optional[str]) -> None:
        self._scoped(self._table(kind).delete().eq("id", doc_id), owner_id).execute()

    def _query_sync(
        self,
        kind: DocumentKind,
        filters: list[QueryFilter],
        options: QueryOptions,
        owner_id: Optional[str],
    ) -> list[Document]:
        builder = self._scoped(self._table(kind).select("*"), owner_id)
        for item in filters:
            if item.op == "==":
                builder = builder.eq(item.field, item.value)
            elif item.op == "array-contains":
                builder = builder.contains(item.field, [item.value])
            else:
                raise ValueError(f"Unsupported filter operator: {item.op}")
        if options.order_by:
            field = options.order_by
            op = "lt" if options.descending else "gt"
            if options.start_after is not None and options.start_after_id is not None:
                value = _filter_literal(options.start_after)
                after_id = _filter_literal(options.start_after_id)
                builder = builder.or_(
                    f"{field}.{op}.{value},and({field}.eq.{value},id.{op}.{after_id})"
                )
            elif options.start_after is not None:
                builder = getattr(builder, op)(field, options.start_after)
            builder = builder.order(field, desc=options.descending)
            builder = builder.order("id", desc=options.descending)
        if options.limit:
            builder = builder.limit(options.limit)
        response = builder.execute()
        return response.data or []

    def _rpc_sync(self, name: str, payload: dict[str, Any]) -> None:
        self._client.rpc(name, payload).execute()
