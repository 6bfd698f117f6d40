"""Filter compilation and join-filter resolution.

Documents hold references to other documents as ids. A filter on a field
of the referenced document, e.g. ``speaker.country`` on an ``Event`` that
references a ``Speaker`` through ``speaker``, cannot be evaluated by the
store directly. Such join filters are resolved first:

1. join conditions are grouped by their referencing field
2. one sub-query per group runs on the referenced type and collects ids
3. a single ``in`` predicate on the referencing field replaces the group

Join fields are recognized in two forms:

- ``speaker.country`` where ``speaker`` is in the type's reference map
  (longest reference field wins)
- ``speaker:Speaker.country``, naming the referenced type explicitly, for
  fields that may reference several types
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docquery.core.query.filters import (
    FilterCondition,
    FilterGroup,
    FilterOperator,
    FiltersDescriptor,
    LogicalOperator,
)
from docquery.infra.logging import get_lazy_logger
from docquery.infra.store.base import (
    ID_FIELD,
    AndExpression,
    Expression,
    FieldCondition,
    OrExpression,
    StoreQuery,
)

if TYPE_CHECKING:
    from docquery.core.engine.registry import DocumentRegistry, DocumentType
    from docquery.infra.store.base import DocumentStore

lazy_logger = get_lazy_logger(__name__)

EXPLICIT_JOIN_PATTERN = re.compile(r"^(?P<field>[^:.]+):(?P<document_type>[A-Za-z_]\w*)\.(?P<sub_field>.+)$")


@dataclass(frozen=True, slots=True)
class JoinTarget:
    """Resolved join field.

    Attributes:
        field: Referencing field on the queried document
        document_type: Name of the referenced document type
        sub_field: Field to filter on in the referenced document
    """

    field: str
    document_type: str
    sub_field: str


class FilterCompiler:
    """Compile FiltersDescriptor trees into store expressions.

    Example:
        compiler = FilterCompiler(registry, store)
        expressions = await compiler.compile(registry.get("Event"), filters)
        documents = await store.find(StoreQuery("events", expressions=expressions))
    """

    def __init__(self, registry: DocumentRegistry, store: DocumentStore) -> None:
        self._registry = registry
        self._store = store

    def resolve_join(self, document_type: DocumentType, field: str | None) -> JoinTarget | None:
        """Return the join target of ``field``, or None for plain fields."""
        if field is None:
            return None

        for reference_field, referenced_type in document_type.get_references_map().items():
            if field != reference_field and field.startswith(f"{reference_field}."):
                return JoinTarget(reference_field, referenced_type, field[len(reference_field) + 1 :])

        explicit = EXPLICIT_JOIN_PATTERN.match(field)
        if explicit and explicit["document_type"] in self._registry:
            return JoinTarget(explicit["field"], explicit["document_type"], explicit["sub_field"])
        return None

    async def compile(
        self,
        document_type: DocumentType,
        filters: FiltersDescriptor | None,
    ) -> tuple[Expression, ...]:
        """Compile filters to implicitly AND-ed expressions.

        Join sub-queries run against the store while compiling.
        """
        if filters is None or len(filters) == 0:
            return ()
        return tuple(await self._compile_descriptor(document_type, filters))

    async def _compile_descriptor(
        self,
        document_type: DocumentType,
        filters: FiltersDescriptor,
    ) -> list[Expression]:
        # Join predicates go first: the store must see the resolved ``in``
        # before any plain predicate on the same reference field
        expressions = await self._join_expressions(document_type, filters)

        for node in filters.nodes:
            match node:
                case FilterGroup(operator=LogicalOperator.AND, children=children):
                    nested: list[Expression] = []
                    for child in children:
                        nested.extend(await self._compile_descriptor(document_type, child))
                    if nested:
                        expressions.append(AndExpression(tuple(nested)))
                case FilterGroup(operator=LogicalOperator.OR, children=children):
                    branches: list[Expression] = []
                    for child in children:
                        if len(child) == 0:
                            continue
                        branch = await self._compile_descriptor(document_type, child)
                        branches.append(branch[0] if len(branch) == 1 else AndExpression(tuple(branch)))
                    if branches:
                        expressions.append(OrExpression(tuple(branches)))
                case FilterCondition(field=field) if self.resolve_join(document_type, field) is None:
                    expressions.append(self._condition(document_type, node))
        return expressions

    async def _join_expressions(
        self,
        document_type: DocumentType,
        filters: FiltersDescriptor,
    ) -> list[Expression]:
        groups: dict[str, list[tuple[JoinTarget, FilterCondition]]] = {}
        for node in filters.nodes:
            if isinstance(node, FilterCondition):
                target = self.resolve_join(document_type, node.field)
                if target is not None:
                    groups.setdefault(target.field, []).append((target, node))

        expressions: list[Expression] = []
        for field, conditions in groups.items():
            referenced = self._registry.get(conditions[0][0].document_type)
            sub_query = StoreQuery(
                collection=referenced.collection,
                expressions=tuple(
                    self._condition(referenced, condition, field=target.sub_field)
                    for target, condition in conditions
                ),
                select=(ID_FIELD,),
                read_only=True,
            )
            ids = [document[ID_FIELD] for document in await self._store.find(sub_query)]
            lazy_logger.debug(
                lambda field=field, referenced=referenced, ids=ids: (
                    f"Resolved join on {field} against {referenced.name}: {len(ids)} ids"
                )
            )
            expressions.append(FieldCondition(field, FilterOperator.IN, ids, reference=True))
        return expressions

    @staticmethod
    def _condition(
        document_type: DocumentType,
        condition: FilterCondition,
        *,
        field: str | None = None,
    ) -> FieldCondition:
        field = field or condition.field
        return FieldCondition(
            field,
            condition.operator,
            condition.value,
            reference=document_type.is_reference_field(field),
        )


__all__ = ["EXPLICIT_JOIN_PATTERN", "FilterCompiler", "JoinTarget"]
