"""Unit of Work Pattern Implementation.

Provides the transactional scope shared by repositories:
- Ownership of one storage session and its tracked change set
- Atomic commit, synchronous or awaitable with a timeout
- Connectivity probe that never raises for connectivity faults
- Deterministic, idempotent disposal (``with``/``async with``/``dispose()``)
"""

import typing as t
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import anyio

from repokit.adapters.storage._base import StorageSession
from repokit.cleanup import DisposableMixin
from repokit.config import DataAccessSettings, get_settings
from repokit.logger import logger

from ._base import UnitOfWorkDisposedError
from .repository import Repository


class UnitOfWorkState(Enum):
    """Unit of Work state enumeration."""

    ACTIVE = "active"
    COMMITTED = "committed"
    DISPOSED = "disposed"


@dataclass
class UnitOfWorkMetrics:
    """Metrics for Unit of Work operations."""

    transaction_id: str
    start_time: datetime
    end_time: datetime | None = None
    state: UnitOfWorkState = UnitOfWorkState.ACTIVE
    commit_count: int = 0
    entities_written: int = 0
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        """Get unit of work lifetime in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class UnitOfWork(DisposableMixin):
    """Transactional scope over one storage session.

    Repositories obtained from :meth:`repository` register their additions and
    removals in the session's tracked change set; :meth:`commit` persists all
    of it atomically. The unit of work stays usable after a commit, so a later
    commit persists whatever changed since. Disposal without a commit
    discards pending changes.

    Not thread-safe: use one unit of work per logical operation.
    """

    def __init__(
        self,
        session: StorageSession,
        settings: DataAccessSettings | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self._session = session
        self._state = UnitOfWorkState.ACTIVE
        self._repositories: dict[type[Any], Repository[Any, Any]] = {}
        self._metrics = UnitOfWorkMetrics(
            transaction_id=str(uuid.uuid4()),
            start_time=datetime.now(UTC),
        )
        self._logger = logger.bind(transaction_id=self._metrics.transaction_id)
        self.register_resource(session)

    @property
    def state(self) -> UnitOfWorkState:
        """Get current Unit of Work state."""
        return self._state

    @property
    def is_active(self) -> bool:
        """Check if the Unit of Work can still be used."""
        return self._state != UnitOfWorkState.DISPOSED

    @property
    def transaction_id(self) -> str:
        return self._metrics.transaction_id

    @property
    def metrics(self) -> UnitOfWorkMetrics:
        self._metrics.state = self._state
        return self._metrics

    def session_for(self, operation: str) -> StorageSession:
        """Return the storage session, or fail if this unit of work is disposed."""
        if self.is_disposed:
            raise UnitOfWorkDisposedError(operation, self.transaction_id)
        return self._session

    def repository[E](self, entity_type: type[E]) -> Repository[E, Any]:
        """Return the repository for ``entity_type``, creating it on first use."""
        self.session_for("repository")
        repository = self._repositories.get(entity_type)
        if repository is None:
            repository = Repository(self, entity_type, self.settings)
            self._repositories[entity_type] = repository
        return repository

    def _record_commit(self, written: int) -> None:
        self._state = UnitOfWorkState.COMMITTED
        self._metrics.commit_count += 1
        self._metrics.entities_written += written
        self._metrics.error_message = None
        self._logger.debug(f"Committed {written} change(s)")

    def _record_failure(self, error: BaseException) -> None:
        self._metrics.error_message = str(error)
        self._logger.opt(exception=error).error(
            f"Exception committing database transaction: {error}",
        )

    def commit(self) -> int:
        """Persist every tracked change atomically.

        Returns:
            Number of entities written

        Raises:
            UnitOfWorkDisposedError: If the unit of work has been disposed
        """
        session = self.session_for("commit")
        try:
            written = session.save_changes()
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_commit(written)
        return written

    async def commit_async(self, timeout: float | None = None) -> int:
        """Persist every tracked change atomically without blocking the event loop.

        Args:
            timeout: Seconds to wait; defaults to ``settings.commit_timeout``

        Raises:
            UnitOfWorkDisposedError: If the unit of work has been disposed
            TimeoutError: If the commit did not finish in time. The outcome in
                storage is then unknown.
        """
        session = self.session_for("commit")
        limit = timeout if timeout is not None else self.settings.commit_timeout
        try:
            with anyio.fail_after(limit):
                written = await session.save_changes_async()
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_commit(written)
        return written

    async def check_database_online(self, timeout: float | None = None) -> bool:
        """Probe whether the storage engine is reachable.

        Args:
            timeout: Seconds to wait; defaults to ``settings.probe_timeout``

        Returns:
            False on connectivity faults or timeout, True otherwise
        """
        session = self.session_for("check database connectivity")
        limit = timeout if timeout is not None else self.settings.probe_timeout
        try:
            with anyio.fail_after(limit):
                return await session.can_connect()
        except TimeoutError:
            self._logger.warning(f"Database connectivity probe timed out after {limit}s")
            return False
        except Exception as e:
            self._logger.warning(f"Database connectivity probe failed: {e}")
            return False

    def _dispose_managed(self) -> None:
        if self._state == UnitOfWorkState.ACTIVE:
            self._logger.debug("Disposing without a commit; pending changes are discarded")
        self._state = UnitOfWorkState.DISPOSED
        self._metrics.end_time = datetime.now(UTC)
        self._repositories.clear()

    def __repr__(self) -> str:
        return f"UnitOfWork(transaction_id={self.transaction_id!r}, state={self._state.value})"


class _SessionSource(t.Protocol):
    def session(self) -> StorageSession: ...


class UnitOfWorkFactory:
    """Creates units of work over a storage engine and keeps their history.

    Args:
        database: Any object whose ``session()`` opens a storage session
            (:class:`~repokit.adapters.storage.memory.MemoryDatabase`,
            :class:`~repokit.adapters.storage.sql.SqlAlchemyDatabase`)
        settings: Settings handed to every unit of work
    """

    def __init__(
        self,
        database: _SessionSource,
        settings: DataAccessSettings | None = None,
        max_history: int = 1000,
    ) -> None:
        self.database = database
        self.settings = settings or get_settings()
        self._max_history = max_history
        self._history: list[UnitOfWorkMetrics] = []

    def create(self) -> UnitOfWork:
        """Open a new unit of work on a fresh storage session."""
        return UnitOfWork(self.database.session(), self.settings)

    def complete(self, unit_of_work: UnitOfWork) -> None:
        """Dispose ``unit_of_work`` and record its metrics."""
        unit_of_work.dispose()
        self._history.append(unit_of_work.metrics)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]

    def get_history(self, limit: int = 100) -> list[UnitOfWorkMetrics]:
        """Metrics of recently completed units of work, oldest first."""
        return self._history[-limit:]

    def get_stats(self) -> dict[str, Any]:
        recent = self._history[-100:]
        committed = sum(1 for metrics in recent if metrics.commit_count)
        durations = [m.duration for m in recent if m.duration is not None]
        return {
            "completed": len(self._history),
            "commit_rate": committed / len(recent) if recent else 0.0,
            "average_duration_seconds": (
                sum(durations) / len(durations) if durations else 0.0
            ),
        }


__all__ = [
    "UnitOfWork",
    "UnitOfWorkFactory",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
]
