"""Document type registry.

A DocumentType tells the engine where documents of a type live, which of
their fields hold references to other types, how raw documents are
hydrated into application objects and how field values are read back
from those objects (for cursors).

Example:
    registry = DocumentRegistry()
    registry.register(DocumentType(name="Speaker", collection="speakers"))
    registry.register(
        DocumentType(
            name="Event",
            collection="events",
            references={"speaker": "Speaker"},
            factory=Event.model_validate,
        )
    )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from docquery.core.exceptions import InvalidInputError
from docquery.core.pagination.cursor import FieldAccessor
from docquery.utils.fields import get_field_value


@dataclass(frozen=True, slots=True)
class DocumentType:
    """Metadata of one document type.

    Attributes:
        name: Registry key, used for cache tags and join syntax
        collection: Store collection holding the documents
        references: Reference field -> referenced document type name
        factory: Hydrator turning a raw document into an application object;
            raw documents are returned as-is when None
        serializer: Inverse of ``factory`` used by the unit of work;
            mappings, pydantic models and dataclasses are handled by default
        accessors: Field -> extractor used to read cursor values from
            hydrated objects; other fields are read by dotted path
    """

    name: str
    collection: str
    references: Mapping[str, str] = field(default_factory=dict)
    factory: Callable[[dict[str, Any]], Any] | None = None
    serializer: Callable[[Any], dict[str, Any]] | None = None
    accessors: Mapping[str, FieldAccessor] = field(default_factory=dict)

    def hydrate(self, raw: dict[str, Any] | None) -> Any:
        if raw is None or self.factory is None:
            return raw
        return self.factory(raw)

    def hydrate_many(self, raws: Iterable[dict[str, Any]]) -> list[Any]:
        return [self.hydrate(raw) for raw in raws]

    def dump(self, document: Any) -> dict[str, Any]:
        """Raw form of a document for writing.

        Plain dicts are returned unchanged so ids assigned on insert are
        visible to the caller.
        """
        if self.serializer is not None:
            return self.serializer(document)
        if isinstance(document, dict):
            return document
        if isinstance(document, Mapping):
            return dict(document)
        if hasattr(document, "model_dump"):
            return document.model_dump()
        if dataclasses.is_dataclass(document) and not isinstance(document, type):
            return dataclasses.asdict(document)
        msg = f"Cannot serialize {type(document).__name__} documents of type {self.name}"
        raise InvalidInputError(msg)

    def read(self, document: Any, field_name: str) -> Any:
        """Read a field through its accessor or by dotted path."""
        accessor = self.accessors.get(field_name)
        return accessor(document) if accessor else get_field_value(document, field_name)

    def get_references_map(self) -> dict[str, str]:
        """Reference map ordered longest field first.

        ``speaker.company`` must be tried before ``speaker`` when matching
        dotted filter fields.
        """
        return dict(sorted(self.references.items(), key=lambda item: len(item[0]), reverse=True))

    def is_reference_field(self, field_name: str) -> bool:
        return field_name in self.references


class DocumentRegistry:
    """Registry of the document types known to an engine."""

    def __init__(self, document_types: Iterable[DocumentType] = ()) -> None:
        self._types: dict[str, DocumentType] = {}
        for document_type in document_types:
            self.register(document_type)

    def register(self, document_type: DocumentType) -> DocumentType:
        """Register a document type.

        Raises:
            InvalidInputError: If a type with the same name is registered
        """
        if document_type.name in self._types:
            msg = f"Document type {document_type.name} is already registered"
            raise InvalidInputError(msg, field="name")
        self._types[document_type.name] = document_type
        return document_type

    def get(self, name: str) -> DocumentType:
        """Resolve a document type by name.

        Raises:
            InvalidInputError: If the type is unknown
        """
        try:
            return self._types[name]
        except KeyError:
            msg = f"Unknown document type: {name}"
            raise InvalidInputError(msg, field="document_type") from None

    def get_references_map(self, name: str) -> dict[str, str]:
        return self.get(name).get_references_map()

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[DocumentType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


__all__ = ["DocumentRegistry", "DocumentType"]
