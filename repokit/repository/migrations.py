"""Schema migration check run at application start-up."""

import typing as t

from repokit.logger import logger

from ._base import PendingMigrationsError

PENDING_MIGRATIONS_MESSAGE = (
    "The program cannot run because the database is not a compatible version.\n"
    "Ask your database administrator to ensure that all migrations have been "
    "applied to the database.\n\n"
    "The following migrations are pending:\n"
)


@t.runtime_checkable
class MigrationSource(t.Protocol):
    """Anything that can list the schema migrations not yet applied."""

    async def pending_migrations(self) -> list[str]: ...


class MigrationChecker:
    """Refuses to let an application run against an outdated schema."""

    def __init__(self, source: MigrationSource) -> None:
        self.source = source

    async def throw_if_pending_migrations(self) -> None:
        """Raise :class:`PendingMigrationsError` if any migration is pending."""
        pending = await self.source.pending_migrations()
        if pending:
            logger.error(
                f"Database: There are {len(pending)} pending database migrations.",
            )
            msg = PENDING_MIGRATIONS_MESSAGE + "\n".join(pending)
            raise PendingMigrationsError(msg, pending)
        logger.info("Database: All database migrations have been applied.")


__all__ = ["MigrationChecker", "MigrationSource", "PENDING_MIGRATIONS_MESSAGE"]
