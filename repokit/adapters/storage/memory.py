"""In-memory storage engine.

This engine keeps all data in process memory and is intended for tests,
prototyping and development. It behaves like a database rather than a plain
dictionary:

- :class:`MemoryDatabase` is the shared store. It holds private copies of every
  persisted entity and applies a change set atomically under a lock.
- :class:`MemorySession` is one transactional scope. Entities it returns are
  session-owned copies tracked in an identity map, so mutations are invisible
  to other sessions until :meth:`MemorySession.save_changes` succeeds, and are
  discarded when the session is closed without saving.

Data is not persisted and is lost when the process exits.
"""

import copy
import dataclasses
import threading
import typing as t
from collections.abc import Callable
from itertools import islice

import anyio

from repokit.logger import logger
from repokit.repository._base import DuplicateEntityError, RepositoryError

from ._base import Condition, Queryable, StorageSession

type _Key = tuple[type[t.Any], t.Any]


class ConcurrencyConflictError(RepositoryError):
    """Raised when a change set updates or deletes an entity that no longer exists."""

    def __init__(self, entity_type: str, entity_id: t.Any, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} {entity_type} with id={entity_id!r}: "
            "it does not exist in storage",
            entity_type=entity_type,
            operation=operation,
        )
        self.entity_id = entity_id


def _key_of(entity: t.Any) -> _Key:
    try:
        return type(entity), entity.id
    except AttributeError as e:
        msg = f"{type(entity).__name__} has no 'id' attribute"
        raise TypeError(msg) from e


def _state_of(entity: t.Any) -> t.Any:
    """Snapshot the comparable state of an entity for change detection."""
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        return dataclasses.asdict(entity)
    if hasattr(entity, "__dict__"):
        return copy.deepcopy(vars(entity))
    return copy.deepcopy(entity)


def _touch_path(element: t.Any, names: list[str]) -> None:
    """Walk an include path, descending into collection navigations."""
    if not names or element is None:
        return
    value = getattr(element, names[0])
    if isinstance(value, list | tuple | set | frozenset):
        for item in value:
            _touch_path(item, names[1:])
    else:
        _touch_path(value, names[1:])


class MemoryQueryable[T](Queryable[T]):
    """Query over a session's view of one entity type, evaluated in-process."""

    def __init__(
        self,
        entity_type: type[t.Any],
        source: Callable[[], list[t.Any]],
        steps: tuple[tuple[str, t.Any], ...] = (),
        projected: bool = False,
    ) -> None:
        super().__init__(entity_type, projected)
        self._source = source
        self._steps = steps

    def _with(self, step: str, arg: t.Any, projected: bool | None = None) -> t.Any:
        return MemoryQueryable(
            self.entity_type,
            self._source,
            (*self._steps, (step, arg)),
            self._projected if projected is None else projected,
        )

    def where(self, condition: Condition) -> "MemoryQueryable[T]":
        if not callable(condition):
            msg = (
                "The in-memory engine evaluates criteria or predicates, "
                f"got {type(condition).__name__}"
            )
            raise TypeError(msg)
        return self._with("where", condition)

    def select[U](self, projection: Callable[[T], U]) -> "MemoryQueryable[U]":
        return self._with("select", projection, projected=True)

    def order_by(self, field: str, descending: bool = False) -> "MemoryQueryable[T]":
        return self._with("order_by", (field, descending))

    def skip(self, count: int) -> "MemoryQueryable[T]":
        return self._with("skip", count)

    def take(self, count: int) -> "MemoryQueryable[T]":
        return self._with("take", count)

    def _include(self, path: str) -> "MemoryQueryable[T]":
        return self._with("include", path)

    def _evaluate(self) -> list[t.Any]:
        from repokit.repository.specifications import resolve_field

        elements: list[t.Any] = self._source()
        includes: list[str] = []
        for step, arg in self._steps:
            match step:
                case "where":
                    elements = [e for e in elements if arg(e)]
                case "select":
                    elements = [arg(e) for e in elements]
                case "order_by":
                    field, descending = arg
                    present = [e for e in elements if resolve_field(e, field) is not None]
                    missing = [e for e in elements if resolve_field(e, field) is None]
                    # NULLs sort last in both directions.
                    elements = sorted(
                        present,
                        key=lambda e: resolve_field(e, field),
                        reverse=descending,
                    ) + missing
                case "skip":
                    elements = elements[arg:]
                case "take":
                    elements = list(islice(elements, arg))
                case "include":
                    includes.append(arg)

        # Navigations are already in memory; walking them surfaces bad paths.
        for path in includes:
            names = path.split(".")
            for element in elements:
                _touch_path(element, names)
        return elements

    def to_list(self) -> list[T]:
        return self._evaluate()

    def any(self) -> bool:
        return bool(self._evaluate())

    def count(self) -> int:
        return len(self._evaluate())


class MemoryDatabase:
    """Shared in-memory store used by any number of :class:`MemorySession` objects.

    Args:
        online: Initial connectivity reported to sessions
        latency: Seconds every connectivity probe waits before answering
    """

    def __init__(self, online: bool = True, latency: float = 0.0) -> None:
        self._tables: dict[type[t.Any], dict[t.Any, t.Any]] = {}
        self._lock = threading.Lock()
        self.online = online
        self.latency = latency

    def session(self) -> "MemorySession":
        """Open a new session (transactional scope) on this store."""
        return MemorySession(self)

    def load_all(self, entity_type: type[t.Any]) -> list[t.Any]:
        with self._lock:
            rows = list(self._tables.get(entity_type, {}).values())
        return [copy.deepcopy(row) for row in rows]

    def load(self, entity_type: type[t.Any], key: t.Any) -> t.Any | None:
        with self._lock:
            row = self._tables.get(entity_type, {}).get(key)
        return copy.deepcopy(row) if row is not None else None

    def contains(self, entity_type: type[t.Any], key: t.Any) -> bool:
        with self._lock:
            return key in self._tables.get(entity_type, {})

    def count(self, entity_type: type[t.Any] | None = None) -> int:
        """Number of stored entities, of one type or overall."""
        with self._lock:
            if entity_type is not None:
                return len(self._tables.get(entity_type, {}))
            return sum(len(table) for table in self._tables.values())

    def apply(
        self,
        deletes: list[_Key],
        inserts: list[t.Any],
        updates: list[t.Any],
    ) -> int:
        """Apply a change set atomically: all of it, or none of it.

        Raises:
            ConcurrencyConflictError: A delete or update targets a missing entity
            DuplicateEntityError: An insert collides with a stored entity
        """
        with self._lock:
            tables = {kind: dict(rows) for kind, rows in self._tables.items()}

            for entity_type, entity_id in deletes:
                table = tables.get(entity_type, {})
                if entity_id not in table:
                    raise ConcurrencyConflictError(
                        entity_type.__name__,
                        entity_id,
                        "delete",
                    )
                del table[entity_id]

            for entity in updates:
                entity_type, entity_id = _key_of(entity)
                table = tables.get(entity_type, {})
                if entity_id not in table:
                    raise ConcurrencyConflictError(
                        entity_type.__name__,
                        entity_id,
                        "update",
                    )
                table[entity_id] = copy.deepcopy(entity)

            for entity in inserts:
                entity_type, entity_id = _key_of(entity)
                table = tables.setdefault(entity_type, {})
                if entity_id in table:
                    raise DuplicateEntityError(entity_type.__name__, entity_id)
                table[entity_id] = copy.deepcopy(entity)

            self._tables = tables
        return len(deletes) + len(inserts) + len(updates)


class MemorySession(StorageSession):
    """Transactional scope over a :class:`MemoryDatabase`.

    Reads see persisted entities plus this session's pending additions, minus
    its pending removals. Not thread-safe.
    """

    def __init__(self, database: MemoryDatabase) -> None:
        self._database = database
        self._identity_map: dict[_Key, t.Any] = {}
        self._originals: dict[_Key, t.Any] = {}
        self._added: dict[_Key, t.Any] = {}
        self._removed: dict[_Key, t.Any] = {}
        self._closed = False

    @property
    def database(self) -> MemoryDatabase:
        return self._database

    @property
    def has_changes(self) -> bool:
        return bool(self._added or self._removed or self._modified())

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "This memory session has been closed"
            raise RuntimeError(msg)

    def _track(self, entity: t.Any) -> t.Any:
        key = _key_of(entity)
        tracked = self._identity_map.get(key)
        if tracked is None:
            self._identity_map[key] = entity
            self._originals[key] = _state_of(entity)
            tracked = entity
        return tracked

    def _visible(self, entity_type: type[t.Any]) -> list[t.Any]:
        self._ensure_open()
        visible = [
            self._track(row)
            for row in self._database.load_all(entity_type)
            if (entity_type, row.id) not in self._removed
        ]
        visible.extend(
            entity
            for (kind, _), entity in self._added.items()
            if kind is entity_type
        )
        return visible

    def _modified(self) -> list[t.Any]:
        return [
            entity
            for key, entity in self._identity_map.items()
            if key not in self._removed
            and key not in self._added
            and _state_of(entity) != self._originals[key]
        ]

    def query[E](self, entity_type: type[E]) -> MemoryQueryable[E]:
        self._ensure_open()
        return MemoryQueryable(entity_type, lambda: self._visible(entity_type))

    def find[E](self, entity_type: type[E], key: t.Any) -> E | None:
        self._ensure_open()
        identity = (entity_type, key)
        if identity in self._added:
            return t.cast("E", self._added[identity])
        if identity in self._removed:
            return None
        if identity in self._identity_map:
            return t.cast("E", self._identity_map[identity])
        row = self._database.load(entity_type, key)
        return t.cast("E", self._track(row)) if row is not None else None

    def add(self, entity: t.Any) -> None:
        self._ensure_open()
        key = _key_of(entity)
        stored = key in self._identity_map or self._database.contains(*key)
        if key in self._added or (stored and key not in self._removed):
            raise DuplicateEntityError(key[0].__name__, key[1])
        self._added[key] = entity

    def remove(self, entity: t.Any) -> None:
        self._ensure_open()
        key = _key_of(entity)
        if key in self._added:
            # Never persisted; forgetting it is enough.
            del self._added[key]
            return
        self._removed[key] = entity

    def save_changes(self) -> int:
        self._ensure_open()
        deletes = list(self._removed)
        inserts = list(self._added.values())
        updates = self._modified()
        written = self._database.apply(deletes, inserts, updates)

        for key in deletes:
            self._identity_map.pop(key, None)
            self._originals.pop(key, None)
        for key, entity in self._added.items():
            self._identity_map[key] = entity
        for key, entity in self._identity_map.items():
            self._originals[key] = _state_of(entity)
        self._added.clear()
        self._removed.clear()

        logger.debug(
            f"Memory session saved {written} change(s): {len(inserts)} added, "
            f"{len(updates)} modified, {len(deletes)} removed",
        )
        return written

    async def can_connect(self) -> bool:
        if self._database.latency:
            await anyio.sleep(self._database.latency)
        return self._database.online

    def close(self) -> None:
        self._identity_map.clear()
        self._originals.clear()
        self._added.clear()
        self._removed.clear()
        self._closed = True


__all__ = [
    "ConcurrencyConflictError",
    "MemoryDatabase",
    "MemoryQueryable",
    "MemorySession",
]
