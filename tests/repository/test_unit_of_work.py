"""Tests for Unit of Work Pattern."""

from unittest.mock import AsyncMock, patch

import anyio
import pytest

from repokit.adapters.storage.memory import MemoryDatabase
from repokit.repository import (
    DuplicateEntityError,
    UnitOfWork,
    UnitOfWorkDisposedError,
    UnitOfWorkFactory,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)
from tests.engines import Engine
from tests.entities import Order


class TestUnitOfWork:
    def test_initial_state(self, memory_uow: UnitOfWork) -> None:
        assert memory_uow.state == UnitOfWorkState.ACTIVE
        assert memory_uow.is_active
        assert not memory_uow.is_disposed
        assert len(memory_uow.transaction_id) == 36
        assert "state=active" in repr(memory_uow)

    def test_repository_is_cached_per_entity_type(self, memory_uow: UnitOfWork) -> None:
        first = memory_uow.repository(Order)

        assert memory_uow.repository(Order) is first
        assert first.entity_type is Order
        assert first.settings is memory_uow.settings

    def test_commit_persists_and_stays_usable(
        self,
        memory_factory: UnitOfWorkFactory,
        memory_db: MemoryDatabase,
    ) -> None:
        with memory_factory.create() as uow:
            uow.repository(Order).add(Order(id=1, total=10))

            assert uow.commit() == 1
            assert uow.state == UnitOfWorkState.COMMITTED
            assert uow.is_active

            uow.repository(Order).add(Order(id=2, total=20))
            assert uow.commit() == 1

        assert memory_db.count(Order) == 2

    def test_second_commit_persists_empty_delta(self, engine: Engine) -> None:
        with engine.factory.create() as uow:
            uow.repository(engine.order_type).add(engine.order(1, 10))
            uow.commit()

            assert uow.commit() == 0
            assert uow.metrics.commit_count == 2

        with engine.factory.create() as uow:
            assert uow.repository(engine.order_type).count() == 1

    def test_commit_counts_changes_seen_by_earlier_queries(self, engine: Engine) -> None:
        with engine.factory.create() as uow:
            repository = uow.repository(engine.order_type)
            repository.add(engine.order(1, 10))
            assert repository.get_maybe(1).has_value

            assert uow.commit() == 1
            assert uow.metrics.entities_written == 1

    def test_dispose_discards_pending_changes(self, engine: Engine) -> None:
        uow = engine.factory.create()
        repository = uow.repository(engine.order_type)
        repository.add(engine.order(1, 10))
        repository.add(engine.order(2, 20))
        uow.dispose()

        with engine.factory.create() as check:
            assert check.repository(engine.order_type).get_all() == []

    def test_with_block_never_commits(self, memory_factory: UnitOfWorkFactory, memory_db: MemoryDatabase) -> None:
        with memory_factory.create() as uow:
            uow.repository(Order).add(Order(id=1, total=10))

        assert uow.is_disposed
        assert uow.state == UnitOfWorkState.DISPOSED
        assert memory_db.count() == 0

    def test_with_block_disposes_on_error(self, memory_factory: UnitOfWorkFactory) -> None:
        with pytest.raises(LookupError), memory_factory.create() as uow:
            raise LookupError("caller failure")

        assert uow.is_disposed

    def test_dispose_is_idempotent(self, memory_factory: UnitOfWorkFactory) -> None:
        uow = memory_factory.create()
        session = uow.session_for("test")

        with patch.object(session, "close", wraps=session.close) as close:
            uow.dispose()
            uow.dispose()
            uow.close()

        close.assert_called_once()
        assert uow.state == UnitOfWorkState.DISPOSED

    def test_operations_after_dispose_fail(self, memory_factory: UnitOfWorkFactory) -> None:
        uow = memory_factory.create()
        uow.dispose()

        with pytest.raises(UnitOfWorkDisposedError, match="Cannot commit"):
            uow.commit()
        with pytest.raises(UnitOfWorkDisposedError):
            uow.repository(Order)

    def test_commit_failure_is_logged_and_reraised(
        self,
        memory_factory: UnitOfWorkFactory,
        log_messages: list[str],
    ) -> None:
        error = RuntimeError("storage unavailable")
        with memory_factory.create() as uow:
            session = uow.session_for("test")
            with (
                patch.object(session, "save_changes", side_effect=error),
                pytest.raises(RuntimeError) as exc_info,
            ):
                uow.commit()

            assert exc_info.value is error
            assert uow.state == UnitOfWorkState.ACTIVE
            assert uow.metrics.error_message == "storage unavailable"

        errors = [m for m in log_messages if m.startswith("ERROR:")]
        assert errors == ["ERROR:Exception committing database transaction: storage unavailable"]

    def test_conflicting_commit_writes_nothing(self, memory_factory: UnitOfWorkFactory, memory_db: MemoryDatabase) -> None:
        with memory_factory.create() as uow:
            uow.repository(Order).add(Order(id=1, total=10))
            uow.commit()

        with memory_factory.create() as uow:
            repository = uow.repository(Order)
            repository.add(Order(id=2, total=20))
            other = memory_factory.create()
            other.repository(Order).add(Order(id=2, total=99))
            other.commit()
            other.dispose()

            with pytest.raises(DuplicateEntityError):
                uow.commit()

        assert memory_db.count(Order) == 2
        with memory_factory.create() as uow:
            assert uow.repository(Order).get_maybe(2).value.total == 99

    def test_finaliser_releases_session_only(
        self,
        memory_factory: UnitOfWorkFactory,
        log_messages: list[str],
    ) -> None:
        uow = memory_factory.create()
        session = uow.session_for("test")

        uow.__del__()

        with pytest.raises(RuntimeError, match="closed"):
            session.query(Order)
        assert log_messages == []

    def test_metrics(self, memory_factory: UnitOfWorkFactory) -> None:
        with memory_factory.create() as uow:
            uow.repository(Order).add_range([Order(id=1, total=1), Order(id=2, total=2)])
            uow.commit()
            assert uow.metrics.duration is None

        metrics = uow.metrics
        assert isinstance(metrics, UnitOfWorkMetrics)
        assert metrics.transaction_id == uow.transaction_id
        assert metrics.state == UnitOfWorkState.DISPOSED
        assert metrics.entities_written == 2
        assert metrics.duration is not None


class TestUnitOfWorkAsync:
    @pytest.mark.asyncio
    async def test_commit_async(self, engine: Engine) -> None:
        async with engine.factory.create() as uow:
            uow.repository(engine.order_type).add(engine.order(1, 10))
            assert await uow.commit_async() == 1
            assert uow.state == UnitOfWorkState.COMMITTED

        assert uow.is_disposed
        with engine.factory.create() as check:
            assert check.repository(engine.order_type).get_maybe(1).has_value

    @pytest.mark.asyncio
    async def test_commit_async_timeout(
        self,
        memory_factory: UnitOfWorkFactory,
        log_messages: list[str],
    ) -> None:
        async def slow_save() -> int:
            await anyio.sleep(5)
            return 0

        with memory_factory.create() as uow:
            session = uow.session_for("test")
            with (
                patch.object(session, "save_changes_async", AsyncMock(side_effect=slow_save)),
                pytest.raises(TimeoutError),
            ):
                await uow.commit_async(timeout=0.05)

            assert uow.state == UnitOfWorkState.ACTIVE

        assert any(m.startswith("ERROR:Exception committing database transaction") for m in log_messages)

    @pytest.mark.asyncio
    async def test_commit_async_failure_is_reraised(self, memory_factory: UnitOfWorkFactory) -> None:
        with memory_factory.create() as uow:
            uow.repository(Order).add(Order(id=1, total=1))
            session = uow.session_for("test")
            with (
                patch.object(session, "save_changes", side_effect=ValueError("bad row")),
                pytest.raises(ValueError, match="bad row"),
            ):
                await uow.commit_async()

    @pytest.mark.asyncio
    async def test_commit_async_after_dispose(self, memory_factory: UnitOfWorkFactory) -> None:
        uow = memory_factory.create()
        uow.dispose()

        with pytest.raises(UnitOfWorkDisposedError):
            await uow.commit_async()

    @pytest.mark.asyncio
    async def test_check_database_online(self, engine: Engine) -> None:
        with engine.factory.create() as uow:
            assert await uow.check_database_online() is True

    @pytest.mark.asyncio
    async def test_check_database_offline(self, memory_factory: UnitOfWorkFactory, memory_db: MemoryDatabase) -> None:
        memory_db.online = False
        with memory_factory.create() as uow:
            assert await uow.check_database_online() is False

    @pytest.mark.asyncio
    async def test_check_database_timeout(
        self,
        memory_factory: UnitOfWorkFactory,
        memory_db: MemoryDatabase,
    ) -> None:
        memory_db.latency = 5
        with memory_factory.create() as uow:
            assert await uow.check_database_online(timeout=0.05) is False

    @pytest.mark.asyncio
    async def test_check_database_fault(self, memory_factory: UnitOfWorkFactory) -> None:
        with memory_factory.create() as uow:
            session = uow.session_for("test")
            with patch.object(session, "can_connect", AsyncMock(side_effect=OSError("refused"))):
                assert await uow.check_database_online() is False

    @pytest.mark.asyncio
    async def test_check_database_after_dispose(self, memory_factory: UnitOfWorkFactory) -> None:
        uow = memory_factory.create()
        uow.dispose()

        with pytest.raises(UnitOfWorkDisposedError):
            await uow.check_database_online()


class TestUnitOfWorkFactory:
    def test_create_uses_fresh_sessions(self, memory_factory: UnitOfWorkFactory) -> None:
        first, second = memory_factory.create(), memory_factory.create()

        assert first.session_for("test") is not second.session_for("test")
        assert first.transaction_id != second.transaction_id
        assert first.settings is memory_factory.settings

    def test_complete_records_history(self, memory_factory: UnitOfWorkFactory) -> None:
        committed = memory_factory.create()
        committed.repository(Order).add(Order(id=1, total=1))
        committed.commit()
        memory_factory.complete(committed)
        memory_factory.complete(memory_factory.create())

        history = memory_factory.get_history()
        assert [m.transaction_id for m in history][0] == committed.transaction_id
        assert committed.is_disposed
        stats = memory_factory.get_stats()
        assert stats["completed"] == 2
        assert stats["commit_rate"] == 0.5

    def test_history_is_bounded(self, memory_db: MemoryDatabase, settings) -> None:
        factory = UnitOfWorkFactory(memory_db, settings, max_history=2)
        for _ in range(3):
            factory.complete(factory.create())

        assert len(factory.get_history()) == 2
        assert factory.get_stats()["completed"] == 2
