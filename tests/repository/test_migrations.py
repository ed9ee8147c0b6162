"""Tests for the pending migration check."""

from pathlib import Path
from textwrap import dedent
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from repokit.adapters.storage.sql import AlembicMigrationSource, SqlAlchemyDatabase
from repokit.repository import (
    MigrationChecker,
    MigrationSource,
    PendingMigrationsError,
    RepositoryError,
)
from repokit.repository.migrations import PENDING_MIGRATIONS_MESSAGE

_REVISION = '''\
"""{doc}"""

revision = "{revision}"
down_revision = {down_revision!r}
branch_labels = None
depends_on = None


def upgrade():
    pass


def downgrade():
    pass
'''


@pytest.fixture
def script_location(tmp_path: Path) -> str:
    """Alembic script directory holding two revisions: a1 <- b2."""
    location = tmp_path / "migrations"
    versions = location / "versions"
    versions.mkdir(parents=True)
    (versions / "a1_create_orders.py").write_text(
        _REVISION.format(doc="create orders", revision="a1", down_revision=None),
    )
    (versions / "b2_add_status.py").write_text(
        _REVISION.format(doc="add status", revision="b2", down_revision="a1"),
    )
    return str(location)


def _stamp(database: SqlAlchemyDatabase, revision: str) -> None:
    with database.engine.begin() as connection:
        connection.execute(
            text(
                dedent("""
                    CREATE TABLE IF NOT EXISTS alembic_version (
                        version_num VARCHAR(32) NOT NULL PRIMARY KEY
                    )
                """),
            ),
        )
        connection.execute(text("DELETE FROM alembic_version"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:revision)"),
            {"revision": revision},
        )


class TestMigrationChecker:
    @pytest.mark.asyncio
    async def test_no_pending_migrations(self, log_messages: list[str]) -> None:
        source = AsyncMock(spec=MigrationSource)
        source.pending_migrations.return_value = []

        await MigrationChecker(source).throw_if_pending_migrations()

        assert "INFO:Database: All database migrations have been applied." in log_messages

    @pytest.mark.asyncio
    async def test_pending_migrations_raise(self, log_messages: list[str]) -> None:
        source = AsyncMock(spec=MigrationSource)
        source.pending_migrations.return_value = ["a1 (create orders)", "b2 (add status)"]

        with pytest.raises(PendingMigrationsError) as exc_info:
            await MigrationChecker(source).throw_if_pending_migrations()

        error = exc_info.value
        assert isinstance(error, RepositoryError)
        assert error.pending == ["a1 (create orders)", "b2 (add status)"]
        assert str(error) == PENDING_MIGRATIONS_MESSAGE + "a1 (create orders)\nb2 (add status)"
        assert "ERROR:Database: There are 2 pending database migrations." in log_messages

    def test_source_protocol(self, sql_db: SqlAlchemyDatabase, script_location: str) -> None:
        assert isinstance(sql_db.migration_source(script_location), MigrationSource)


class TestAlembicMigrationSource:
    @pytest.mark.asyncio
    async def test_unstamped_database_has_everything_pending(
        self,
        sql_db: SqlAlchemyDatabase,
        script_location: str,
    ) -> None:
        source = AlembicMigrationSource(sql_db.engine, script_location)

        assert await source.pending_migrations() == ["a1 (create orders)", "b2 (add status)"]

    @pytest.mark.asyncio
    async def test_partially_migrated_database(
        self,
        sql_db: SqlAlchemyDatabase,
        script_location: str,
    ) -> None:
        _stamp(sql_db, "a1")

        assert await sql_db.migration_source(script_location).pending_migrations() == [
            "b2 (add status)",
        ]

    @pytest.mark.asyncio
    async def test_up_to_date_database_passes_the_check(
        self,
        sql_db: SqlAlchemyDatabase,
        script_location: str,
    ) -> None:
        _stamp(sql_db, "b2")

        checker = MigrationChecker(sql_db.migration_source(script_location))
        await checker.throw_if_pending_migrations()
