"""Query Specification Pattern Implementation.

Provides reusable, declarative query specifications:
- Specification base class pairing a query transform with a fetch strategy
- Composition by wrapping (``where``, ``select``)
- Portable field criteria with logical operators (AND, OR, NOT) that every
  shipped storage engine can evaluate
- Ready-made specifications for common lookups
"""

from abc import ABC, abstractmethod
from enum import Enum

from collections.abc import Callable
from typing import Any

from repokit.adapters.storage._base import Condition, Queryable

from .fetch import FetchStrategy


class ComparisonOperator(Enum):
    """Comparison operators for field criteria."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"


_ORDERING = {
    ComparisonOperator.GREATER_THAN: lambda a, b: a > b,
    ComparisonOperator.GREATER_THAN_OR_EQUAL: lambda a, b: a >= b,
    ComparisonOperator.LESS_THAN: lambda a, b: a < b,
    ComparisonOperator.LESS_THAN_OR_EQUAL: lambda a, b: a <= b,
}


def resolve_field(candidate: Any, field: str) -> Any:
    """Follow a dotted field path on ``candidate``; missing links yield None."""
    value = candidate
    for name in field.split("."):
        if value is None:
            return None
        value = getattr(value, name, None)
    return value


class Criterion(ABC):
    """A filter condition that storage engines can evaluate.

    Criteria evaluate in-process through :meth:`matches` (and are callable, so
    they work wherever a predicate does) and are compiled by engines that
    translate them to a native query language.
    """

    @abstractmethod
    def matches(self, candidate: Any) -> bool:
        """Return whether ``candidate`` satisfies this criterion."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert criterion to dictionary representation."""

    def __call__(self, candidate: Any) -> bool:
        return self.matches(candidate)

    def __and__(self, other: "Criterion") -> "AndCriterion":
        """Combine criteria with AND operator."""
        return AndCriterion([self, other])

    def __or__(self, other: "Criterion") -> "OrCriterion":
        """Combine criteria with OR operator."""
        return OrCriterion([self, other])

    def __invert__(self) -> "NotCriterion":
        """Negate criterion with NOT operator."""
        return NotCriterion(self)


class FieldCriterion(Criterion):
    """Criterion comparing one entity field with a value."""

    def __init__(self, field: str, operator: ComparisonOperator, value: Any) -> None:
        if operator == ComparisonOperator.BETWEEN and (
            not isinstance(value, list | tuple) or len(value) != 2
        ):
            msg = "BETWEEN operator requires a list/tuple of 2 values"
            raise ValueError(msg)
        self.field = field
        self.operator = operator
        self.value = value

    def matches(self, candidate: Any) -> bool:  # noqa: C901
        actual = resolve_field(candidate, self.field)

        match self.operator:
            case ComparisonOperator.EQUALS:
                return bool(actual == self.value)
            case ComparisonOperator.NOT_EQUALS:
                return actual is not None and bool(actual != self.value)
            case ComparisonOperator.IS_NULL:
                return actual is None
            case ComparisonOperator.IS_NOT_NULL:
                return actual is not None

        # Remaining operators follow SQL semantics: NULL never matches.
        if actual is None:
            return False

        match self.operator:
            case (
                ComparisonOperator.GREATER_THAN
                | ComparisonOperator.GREATER_THAN_OR_EQUAL
                | ComparisonOperator.LESS_THAN
                | ComparisonOperator.LESS_THAN_OR_EQUAL
            ):
                return bool(_ORDERING[self.operator](actual, self.value))
            case ComparisonOperator.IN:
                return actual in self.value
            case ComparisonOperator.NOT_IN:
                return actual not in self.value
            case ComparisonOperator.CONTAINS:
                return self.value in actual
            case ComparisonOperator.STARTS_WITH:
                return str(actual).startswith(self.value)
            case ComparisonOperator.ENDS_WITH:
                return str(actual).endswith(self.value)
            case ComparisonOperator.BETWEEN:
                low, high = self.value
                return bool(low <= actual <= high)

        msg = f"Unsupported operator: {self.operator}"
        raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "field",
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
        }

    def __repr__(self) -> str:
        return f"FieldCriterion({self.field!r}, {self.operator.name}, {self.value!r})"


class AndCriterion(Criterion):
    """Criterion for AND operations."""

    def __init__(self, criteria: list[Criterion]) -> None:
        self.criteria = criteria

    def matches(self, candidate: Any) -> bool:
        return all(criterion.matches(candidate) for criterion in self.criteria)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "and", "criteria": [c.to_dict() for c in self.criteria]}


class OrCriterion(Criterion):
    """Criterion for OR operations."""

    def __init__(self, criteria: list[Criterion]) -> None:
        self.criteria = criteria

    def matches(self, candidate: Any) -> bool:
        return any(criterion.matches(candidate) for criterion in self.criteria)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "or", "criteria": [c.to_dict() for c in self.criteria]}


class NotCriterion(Criterion):
    """Criterion for NOT operations."""

    def __init__(self, criterion: Criterion) -> None:
        self.criterion = criterion

    def matches(self, candidate: Any) -> bool:
        return not self.criterion.matches(candidate)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "not", "criterion": self.criterion.to_dict()}


class Specification[E, O](ABC):
    """Abstract base class for query specifications.

    A specification is a pure transform from the base queryable of an entity
    type to the queryable of results, together with the fetch strategy naming
    related entities to load eagerly. Specifications hold no per-query state
    and can be reused across repositories of the same entity type.

    A specification whose query projects elements to another shape must keep
    its fetch strategy empty; repositories reject the combination.
    """

    def __init__(self, fetch_strategy: FetchStrategy[E] | None = None) -> None:
        self._fetch_strategy = fetch_strategy

    @property
    def fetch_strategy(self) -> FetchStrategy[E]:
        """Include paths to load with the query; empty unless declared."""
        strategy = getattr(self, "_fetch_strategy", None)
        if strategy is None:
            strategy = FetchStrategy()
            self._fetch_strategy = strategy
        return strategy

    @abstractmethod
    def get_query(self, query: Queryable[E]) -> Queryable[O]:
        """Apply this specification to the base queryable.

        Args:
            query: Unfiltered queryable over every entity of type ``E``

        Returns:
            The filtered and/or projected queryable
        """

    def where(self, condition: Condition) -> "Specification[E, O]":
        """Wrap this specification with an additional filter."""
        return FilteredSpecification(self, condition)

    def select[U](self, projection: Callable[[O], U]) -> "Specification[E, U]":
        """Wrap this specification with a projection."""
        return ProjectedSpecification(self, projection)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fetch_strategy={self.fetch_strategy!r})"


QuerySpecification = Specification


class AllEntities[E](Specification[E, E]):
    """Every entity of the type, optionally with eager loading."""

    def get_query(self, query: Queryable[E]) -> Queryable[E]:
        return query


class Satisfying[E](Specification[E, E]):
    """Entities matching a criterion or engine-native condition."""

    def __init__(
        self,
        condition: Condition,
        fetch_strategy: FetchStrategy[E] | None = None,
    ) -> None:
        super().__init__(fetch_strategy)
        self.condition = condition

    def get_query(self, query: Queryable[E]) -> Queryable[E]:
        return query.where(self.condition)


class ById[E](Satisfying[E]):
    """The entity with the given key; yields zero or one result."""

    def __init__(
        self,
        key: Any,
        fetch_strategy: FetchStrategy[E] | None = None,
        field: str = "id",
    ) -> None:
        super().__init__(equals(field, key), fetch_strategy)
        self.key = key


class FilteredSpecification[E, O](Specification[E, O]):
    """Specification narrowing another specification's results."""

    def __init__(self, inner: Specification[E, O], condition: Condition) -> None:
        super().__init__()
        self.inner = inner
        self.condition = condition

    @property
    def fetch_strategy(self) -> FetchStrategy[E]:
        return self.inner.fetch_strategy

    def get_query(self, query: Queryable[E]) -> Queryable[O]:
        return self.inner.get_query(query).where(self.condition)


class ProjectedSpecification[E, O, U](Specification[E, U]):
    """Specification mapping another specification's results to a new shape."""

    def __init__(
        self,
        inner: Specification[E, O],
        projection: Callable[[O], U],
    ) -> None:
        super().__init__()
        self.inner = inner
        self.projection = projection

    @property
    def fetch_strategy(self) -> FetchStrategy[E]:
        return self.inner.fetch_strategy

    def get_query(self, query: Queryable[E]) -> Queryable[U]:
        return self.inner.get_query(query).select(self.projection)


# Convenience functions for creating criteria
def equals(field: str, value: Any) -> FieldCriterion:
    """Create equals criterion."""
    return FieldCriterion(field, ComparisonOperator.EQUALS, value)


def not_equals(field: str, value: Any) -> FieldCriterion:
    """Create not equals criterion."""
    return FieldCriterion(field, ComparisonOperator.NOT_EQUALS, value)


def greater_than(field: str, value: Any) -> FieldCriterion:
    """Create greater than criterion."""
    return FieldCriterion(field, ComparisonOperator.GREATER_THAN, value)


def greater_than_or_equal(field: str, value: Any) -> FieldCriterion:
    """Create greater than or equal criterion."""
    return FieldCriterion(field, ComparisonOperator.GREATER_THAN_OR_EQUAL, value)


def less_than(field: str, value: Any) -> FieldCriterion:
    """Create less than criterion."""
    return FieldCriterion(field, ComparisonOperator.LESS_THAN, value)


def less_than_or_equal(field: str, value: Any) -> FieldCriterion:
    """Create less than or equal criterion."""
    return FieldCriterion(field, ComparisonOperator.LESS_THAN_OR_EQUAL, value)


def in_values(field: str, values: list[Any]) -> FieldCriterion:
    """Create IN criterion."""
    return FieldCriterion(field, ComparisonOperator.IN, list(values))


def not_in_values(field: str, values: list[Any]) -> FieldCriterion:
    """Create NOT IN criterion."""
    return FieldCriterion(field, ComparisonOperator.NOT_IN, list(values))


def contains(field: str, value: str) -> FieldCriterion:
    """Create contains criterion."""
    return FieldCriterion(field, ComparisonOperator.CONTAINS, value)


def starts_with(field: str, value: str) -> FieldCriterion:
    """Create starts with criterion."""
    return FieldCriterion(field, ComparisonOperator.STARTS_WITH, value)


def ends_with(field: str, value: str) -> FieldCriterion:
    """Create ends with criterion."""
    return FieldCriterion(field, ComparisonOperator.ENDS_WITH, value)


def is_null(field: str) -> FieldCriterion:
    """Create IS NULL criterion."""
    return FieldCriterion(field, ComparisonOperator.IS_NULL, None)


def is_not_null(field: str) -> FieldCriterion:
    """Create IS NOT NULL criterion."""
    return FieldCriterion(field, ComparisonOperator.IS_NOT_NULL, None)


def between(field: str, start: Any, end: Any) -> FieldCriterion:
    """Create BETWEEN criterion."""
    return FieldCriterion(field, ComparisonOperator.BETWEEN, [start, end])


def and_criteria(*criteria: Criterion) -> AndCriterion:
    """Create AND criterion from multiple criteria."""
    return AndCriterion(list(criteria))


def or_criteria(*criteria: Criterion) -> OrCriterion:
    """Create OR criterion from multiple criteria."""
    return OrCriterion(list(criteria))


def not_criterion(criterion: Criterion) -> NotCriterion:
    """Create NOT criterion."""
    return NotCriterion(criterion)


__all__ = [
    "AllEntities",
    "AndCriterion",
    "ById",
    "ComparisonOperator",
    "Criterion",
    "FieldCriterion",
    "FilteredSpecification",
    "NotCriterion",
    "OrCriterion",
    "ProjectedSpecification",
    "QuerySpecification",
    "Satisfying",
    "Specification",
    "and_criteria",
    "between",
    "contains",
    "ends_with",
    "equals",
    "greater_than",
    "greater_than_or_equal",
    "in_values",
    "is_not_null",
    "is_null",
    "less_than",
    "less_than_or_equal",
    "not_criterion",
    "not_equals",
    "not_in_values",
    "or_criteria",
    "resolve_field",
    "starts_with",
]
