"""Field-level mutations for direct updates that bypass the unit of work."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from docquery.core.exceptions import InvalidInputError


class UpdateOperator(StrEnum):
    SET = "set"
    PUSH = "push"
    INC = "inc"


@dataclass(frozen=True, slots=True)
class UpdateOperation:
    field: str
    operator: UpdateOperator
    value: Any


class UpdateDescriptor:
    """Ordered list of update operations.

    Example:
        update = UpdateDescriptor().set("status", "archived").increment("views", 1)
    """

    __slots__ = ("_operations",)

    def __init__(self) -> None:
        self._operations: list[UpdateOperation] = []

    def __len__(self) -> int:
        return len(self._operations)

    @property
    def operations(self) -> tuple[UpdateOperation, ...]:
        return tuple(self._operations)

    def set(self, field: str, value: Any, *, condition: bool = True) -> UpdateDescriptor:
        if condition:
            self._operations.append(UpdateOperation(field, UpdateOperator.SET, value))
        return self

    def push(self, field: str, value: Any, *, condition: bool = True) -> UpdateDescriptor:
        """Append ``value`` to the array ``field``."""
        if condition:
            self._operations.append(UpdateOperation(field, UpdateOperator.PUSH, value))
        return self

    def increment(self, field: str, value: int | float, *, condition: bool = True) -> UpdateDescriptor:
        """Add ``value`` to the numeric ``field``.

        Raises:
            InvalidInputError: If ``value`` is not a number
        """
        if condition:
            if not isinstance(value, int | float) or isinstance(value, bool):
                msg = "increment expects a number"
                raise InvalidInputError(msg, field=field)
            self._operations.append(UpdateOperation(field, UpdateOperator.INC, value))
        return self

    def get_update_operations_as_list(self) -> list[dict[str, Any]]:
        """Return operations as ``{"field", "operator", "value"}`` entries."""
        return [
            {"field": operation.field, "operator": operation.operator.value, "value": operation.value}
            for operation in self._operations
        ]


__all__ = ["UpdateDescriptor", "UpdateOperation", "UpdateOperator"]
