"""Query execution.

Usage:
    from docquery.core.engine import DocumentRegistry, DocumentType, QueryEngine, UnitOfWork

    registry = DocumentRegistry([DocumentType(name="Event", collection="events")])
    engine = QueryEngine(store, registry, cache)
"""

from docquery.core.engine.engine import QueryEngine
from docquery.core.engine.joins import FilterCompiler, JoinTarget
from docquery.core.engine.registry import DocumentRegistry, DocumentType
from docquery.core.engine.unit_of_work import UnitOfWork

__all__ = [
    "DocumentRegistry",
    "DocumentType",
    "FilterCompiler",
    "JoinTarget",
    "QueryEngine",
    "UnitOfWork",
]
