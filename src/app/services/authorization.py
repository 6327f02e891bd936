from __future__ import annotations

import logging

from src.app.domain.errors import NotAuthorizedError, NotFoundError
from src.app.infra.db.base import Document, DocumentKind, DocumentStore

logger = logging.getLogger(__name__)


async def require_collection_owner(
    store: DocumentStore,
    collection_id: str,
    caller_id: str,
) -> Document:
    """
    Re-read the collection and check ownership before a write.

    A copy held by the caller is never trusted: it may be stale, or may not
    have been the caller's to begin with.

    Raises:
        NotFoundError: If the collection no longer exists
        NotAuthorizedError: If the caller does not own it
    """
    document = await store.get(DocumentKind.COLLECTIONS, collection_id)
    if document is None:
        raise NotFoundError("collection", collection_id)
    if document.get("owner_id") != caller_id:
        logger.warning(
            "authz.denied kind=collection id=%s caller=%s", collection_id, caller_id
        )
        raise NotAuthorizedError("collection", collection_id, caller_id)
    return document
