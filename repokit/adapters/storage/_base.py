"""Storage engine seam.

The repository layer never talks to a database directly. It asks a
:class:`StorageSession` for a :class:`Queryable` over one entity type, composes
filters, projections and include paths on it, and registers additions and
removals in the session's tracked change set. A session persists the whole
change set atomically in :meth:`StorageSession.save_changes`.

Concrete engines live next to this module (``memory`` and ``sql``).
"""

import typing as t
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator

import anyio

if t.TYPE_CHECKING:
    from repokit.repository.specifications import Criterion

# Engines accept portable criteria plus their own native condition types.
type Condition = Criterion | Callable[[t.Any], bool] | t.Any


class Queryable[T](ABC):
    """Immutable, lazily executed query over the entities of one type.

    Every composition method returns a new queryable; the receiver is never
    modified. Nothing touches storage until :meth:`to_list`, :meth:`any` or
    :meth:`count` is called.
    """

    def __init__(self, entity_type: type[t.Any], projected: bool = False) -> None:
        self.entity_type = entity_type
        self._projected = projected

    @property
    def is_projected(self) -> bool:
        """True once :meth:`select` has changed the element shape."""
        return self._projected

    @abstractmethod
    def where(self, condition: Condition) -> "Queryable[T]":
        """Narrow the query to elements satisfying ``condition``."""

    @abstractmethod
    def select[U](self, projection: Callable[[T], U]) -> "Queryable[U]":
        """Map every element through ``projection``."""

    @abstractmethod
    def order_by(self, field: str, descending: bool = False) -> "Queryable[T]":
        """Sort by a property of the entity."""

    @abstractmethod
    def skip(self, count: int) -> "Queryable[T]":
        """Bypass the first ``count`` elements."""

    @abstractmethod
    def take(self, count: int) -> "Queryable[T]":
        """Return at most ``count`` elements."""

    def include(self, path: str) -> "Queryable[T]":
        """Eagerly load the related entities named by a dotted path."""
        if self._projected:
            from repokit.repository._base import ProjectedFetchStrategyError

            raise ProjectedFetchStrategyError(type(self).__name__, (path,))
        return self._include(path)

    @abstractmethod
    def _include(self, path: str) -> "Queryable[T]": ...

    @abstractmethod
    def to_list(self) -> list[T]:
        """Execute the query and materialise every result."""

    @abstractmethod
    def any(self) -> bool:
        """Return whether the query has at least one result."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of results."""

    def __iter__(self) -> Iterator[T]:
        return iter(self.to_list())


class StorageSession(ABC):
    """One storage engine session: a queryable view plus a tracked change set."""

    @abstractmethod
    def query[E](self, entity_type: type[E]) -> Queryable[E]:
        """Return a queryable over the tracked and persisted entities of a type."""

    @abstractmethod
    def find[E](self, entity_type: type[E], key: t.Any) -> E | None:
        """Look up a single entity by key."""

    @abstractmethod
    def add(self, entity: t.Any) -> None:
        """Register an entity for insertion."""

    @abstractmethod
    def remove(self, entity: t.Any) -> None:
        """Register an entity for deletion."""

    @abstractmethod
    def save_changes(self) -> int:
        """Persist the tracked change set atomically.

        Returns:
            Number of entities written.
        """

    async def save_changes_async(self) -> int:
        """Persist the tracked change set without blocking the event loop."""
        return await anyio.to_thread.run_sync(
            self.save_changes,
            abandon_on_cancel=True,
        )

    @abstractmethod
    async def can_connect(self) -> bool:
        """Probe connectivity; connectivity faults yield False."""

    @abstractmethod
    def close(self) -> None:
        """Release the session, discarding uncommitted changes."""
