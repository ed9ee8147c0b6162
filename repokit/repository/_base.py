"""Repository base types.

Provides the foundations shared by the repository layer:
- Domain entity contract
- Error hierarchy for repository and unit of work operations
- Repository protocol implemented by :class:`repokit.repository.Repository`
"""

import typing as t
from collections.abc import Iterable
from typing import Any

from repokit.maybe import Maybe


@t.runtime_checkable
class DomainEntity[K](t.Protocol):
    """Structural contract for every persisted entity.

    The only requirement is an ``id`` that uniquely identifies the entity
    among all entities of the same type.
    """

    id: K


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class MultipleResultsError(RepositoryError):
    """Raised when a specification expected to yield 0..1 results yields more."""

    def __init__(self, entity_type: str, count: int) -> None:
        super().__init__(
            f"More than one {entity_type} result was returned ({count}); "
            "check your specification!",
            entity_type=entity_type,
            operation="get_maybe",
        )
        self.count = count


class DuplicateEntityError(RepositoryError):
    """Raised when an entity with the same key is already tracked or stored."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with id={entity_id!r} already exists",
            entity_type=entity_type,
            operation="add",
        )
        self.entity_id = entity_id


class UnitOfWorkDisposedError(RepositoryError):
    """Raised when a unit of work, or a repository derived from it, is used after disposal."""

    def __init__(self, operation: str, transaction_id: str | None = None) -> None:
        super().__init__(
            f"Cannot {operation}: the unit of work has already been disposed",
            operation=operation,
        )
        self.transaction_id = transaction_id


class UnsupportedExpressionError(RepositoryError):
    """Raised when an include path cannot be reduced to a chain of property names."""

    def __init__(self, message: str, expression: Any = None) -> None:
        super().__init__(message, operation="include")
        self.expression = expression


class ProjectedFetchStrategyError(RepositoryError):
    """Raised when a projecting specification also declares include paths."""

    def __init__(self, specification: str, include_paths: tuple[str, ...]) -> None:
        super().__init__(
            f"{specification} projects its results and must declare an empty fetch "
            f"strategy, but includes {list(include_paths)}",
            operation="query",
        )
        self.specification = specification
        self.include_paths = include_paths


class PendingMigrationsError(RepositoryError):
    """Raised when the database schema has migrations that are not applied."""

    def __init__(self, message: str, pending: list[str]) -> None:
        super().__init__(message, operation="check_migrations")
        self.pending = pending


@t.runtime_checkable
class RepositoryProtocol[E, K](t.Protocol):
    """Protocol defining the repository interface."""

    def get_all(self) -> list[E]: ...

    def get_maybe(self, id_or_spec: Any) -> Maybe[Any]: ...

    def all_satisfying(self, specification: Any) -> list[Any]: ...

    def any(self, specification: Any) -> bool: ...

    def count(self, specification: Any = None) -> int: ...

    def add(self, entity: E) -> None: ...

    def add_range(self, entities: Iterable[E]) -> None: ...

    def remove(self, entity: E) -> None: ...

    def remove_range(self, entities: Iterable[E]) -> None: ...
