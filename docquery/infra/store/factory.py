"""Document store construction from StoreSettings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docquery.infra.store.memory import MemoryDocumentStore
from docquery.infra.store.mongo import MongoDocumentStore

if TYPE_CHECKING:
    from docquery.core.settings.store import StoreSettings
    from docquery.infra.store.base import DocumentStore

logger = logging.getLogger(__name__)


def create_document_store(settings: StoreSettings) -> DocumentStore:
    """Build the document store named by ``settings.backend``.

    Example:
        store = create_document_store(get_store_settings())
    """
    if settings.backend == "mongo":
        return MongoDocumentStore.from_settings(settings)
    logger.info("Using in-memory document store")
    return MemoryDocumentStore()


__all__ = ["create_document_store"]
