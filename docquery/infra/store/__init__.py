"""Document store drivers."""

from docquery.infra.store.base import (
    AndExpression,
    DeleteDocument,
    DocumentStore,
    DocumentWrite,
    Expression,
    FieldCondition,
    OrExpression,
    PrimeReference,
    StoreQuery,
    UpsertDocument,
)
from docquery.infra.store.factory import create_document_store
from docquery.infra.store.memory import MemoryDocumentStore

__all__ = [
    "AndExpression",
    "DeleteDocument",
    "DocumentStore",
    "DocumentWrite",
    "Expression",
    "FieldCondition",
    "MemoryDocumentStore",
    "OrExpression",
    "PrimeReference",
    "StoreQuery",
    "UpsertDocument",
    "create_document_store",
]
