"""Filter expressions and sort properties for item queries."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class FilterOperator(str, Enum):
    EQUALS = "_eq"
    NOT_EQUAL = "_neq"
    LESS_THAN = "_lt"
    LESS_THAN_OR_EQUAL = "_lte"
    GREATER_THAN = "_gt"
    GREATER_THAN_OR_EQUAL = "_gte"
    ONE_OF = "_in"
    NOT_ONE_OF = "_nin"
    IS_NULL = "_null"
    IS_NOT_NULL = "_nnull"
    CONTAINS = "_contains"
    NOT_CONTAINS = "_ncontains"
    STARTS_WITH = "_starts_with"
    NOT_STARTS_WITH = "_nstarts_with"
    ENDS_WITH = "_ends_with"
    NOT_ENDS_WITH = "_nends_with"
    BETWEEN = "_between"
    NOT_BETWEEN = "_nbetween"
    IS_EMPTY = "_empty"
    IS_NOT_EMPTY = "_nempty"


class LogicalOperator(str, Enum):
    AND = "_and"
    OR = "_or"


@runtime_checkable
class Filter(Protocol):
    """Anything that renders to a Directus filter object."""

    def as_dict(self) -> dict[str, Any]: ...


def filter_to_json(expression: Filter) -> str:
    """Compact JSON for the ``filter`` query parameter."""
    return json.dumps(expression.as_dict(), separators=(",", ":"), default=str)


@dataclass(frozen=True, slots=True)
class PropertyFilter:
    """``{field: {operator: value}}``"""

    field: str
    operator: FilterOperator
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {self.field: {self.operator.value: self.value}}

    def as_json(self) -> str:
        return filter_to_json(self)


@dataclass(frozen=True, slots=True)
class LogicalOperatorFilter:
    """``{"_and" | "_or": [child, ...]}``"""

    operator: LogicalOperator
    children: Sequence[Filter]

    def as_dict(self) -> dict[str, Any]:
        return {self.operator.value: [child.as_dict() for child in self.children]}

    def as_json(self) -> str:
        return filter_to_json(self)


@dataclass(frozen=True, slots=True)
class RelationFilter:
    """Applies a filter to the record linked through ``property_name``."""

    property_name: str
    linked_filter: Filter

    def as_dict(self) -> dict[str, Any]:
        return {self.property_name: self.linked_filter.as_dict()}

    def as_json(self) -> str:
        return filter_to_json(self)


@dataclass(frozen=True, slots=True)
class SortProperty:
    name: str
    ascending: bool = True

    def __str__(self) -> str:
        return self.name if self.ascending else f"-{self.name}"


def sort_to_param(sort_by: list[SortProperty]) -> str:
    return ",".join(str(prop) for prop in sort_by)
