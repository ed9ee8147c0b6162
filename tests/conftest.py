"""Configuration for pytest testing framework."""

import pytest
import typing as t
from loguru import logger

from repokit.adapters.storage.memory import MemoryDatabase
from repokit.adapters.storage.sql import SqlAlchemyDatabase
from repokit.config import DataAccessSettings
from repokit.repository import UnitOfWork, UnitOfWorkFactory
from tests.entities import Base


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "quick: mark test as fast-running")


@pytest.fixture
def settings() -> DataAccessSettings:
    """Settings independent of the environment and any .env file."""
    return DataAccessSettings(
        _env_file=None,
        treat_lookup_faults_as_not_found=True,
        commit_timeout=5.0,
        probe_timeout=1.0,
        database_url="sqlite://",
        echo=False,
        log_level="DEBUG",
    )


@pytest.fixture
def log_messages() -> t.Iterator[list[str]]:
    """Capture loguru output as ``LEVEL:message`` strings."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(
            f"{message.record['level'].name}:{message.record['message']}",
        ),
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def memory_db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture
def memory_factory(
    memory_db: MemoryDatabase,
    settings: DataAccessSettings,
) -> UnitOfWorkFactory:
    return UnitOfWorkFactory(memory_db, settings)


@pytest.fixture
def memory_uow(memory_factory: UnitOfWorkFactory) -> t.Iterator[UnitOfWork]:
    with memory_factory.create() as uow:
        yield uow


@pytest.fixture
def sql_db(tmp_path: t.Any, settings: DataAccessSettings) -> t.Iterator[SqlAlchemyDatabase]:
    """SQLAlchemy engine on a temporary SQLite file with the test schema."""
    database = SqlAlchemyDatabase(f"sqlite:///{tmp_path / 'repokit.db'}", settings)
    database.create_all(Base.metadata)
    yield database
    database.dispose()


@pytest.fixture
def sql_factory(
    sql_db: SqlAlchemyDatabase,
    settings: DataAccessSettings,
) -> UnitOfWorkFactory:
    return UnitOfWorkFactory(sql_db, settings)
