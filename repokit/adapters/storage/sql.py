"""SQLAlchemy storage engine.

Wraps a synchronous SQLAlchemy 2.0 ``Session`` behind :class:`StorageSession`.
Portable criteria are compiled to SQL expressions, include paths become
``selectinload`` chains, and :meth:`SqlAlchemySession.save_changes` flushes and
commits the whole change set in one database transaction.

Mapped classes can declare an ``id`` column of any type; the engine only
relies on ``session.get`` for key lookup.
"""

import typing as t
from collections.abc import Callable

from anyio import to_thread
from sqlalchemy import (
    ColumnElement,
    Engine,
    MetaData,
    Select,
    and_,
    create_engine,
    event,
    func,
    inspect as sa_inspect,
    not_,
    or_,
    select,
    text,
)
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from repokit.config import DataAccessSettings, get_settings
from repokit.logger import logger
from repokit.repository.specifications import (
    AndCriterion,
    ComparisonOperator,
    Criterion,
    FieldCriterion,
    NotCriterion,
    OrCriterion,
)

from ._base import Condition, Queryable, StorageSession


def _column_for(entity_type: type[t.Any], field: str) -> t.Any:
    try:
        return getattr(entity_type, field)
    except AttributeError as e:
        msg = f"{entity_type.__name__} has no mapped attribute {field!r}"
        raise ArgumentError(msg) from e


def _compile_field(criterion: FieldCriterion, entity_type: type[t.Any]) -> t.Any:
    head, _, rest = criterion.field.partition(".")
    if rest:
        # Dotted fields navigate a relationship and test the related row.
        relationship = sa_inspect(entity_type).relationships.get(head)
        if relationship is None:
            msg = f"{entity_type.__name__}.{head} is not a relationship"
            raise ArgumentError(msg)
        nested = FieldCriterion(rest, criterion.operator, criterion.value)
        inner = _compile_field(nested, relationship.mapper.class_)
        attribute = getattr(entity_type, head)
        if relationship.uselist:
            return attribute.any(inner)
        return attribute.has(inner)

    column = _column_for(entity_type, head)
    value = criterion.value
    match criterion.operator:
        case ComparisonOperator.EQUALS:
            return column.is_(None) if value is None else column == value
        case ComparisonOperator.NOT_EQUALS:
            return column.is_not(None) if value is None else column != value
        case ComparisonOperator.GREATER_THAN:
            return column > value
        case ComparisonOperator.GREATER_THAN_OR_EQUAL:
            return column >= value
        case ComparisonOperator.LESS_THAN:
            return column < value
        case ComparisonOperator.LESS_THAN_OR_EQUAL:
            return column <= value
        case ComparisonOperator.IN:
            return column.in_(list(value))
        case ComparisonOperator.NOT_IN:
            return column.not_in(list(value))
        case ComparisonOperator.CONTAINS:
            return column.contains(value, autoescape=True)
        case ComparisonOperator.STARTS_WITH:
            return column.startswith(value, autoescape=True)
        case ComparisonOperator.ENDS_WITH:
            return column.endswith(value, autoescape=True)
        case ComparisonOperator.IS_NULL:
            return column.is_(None)
        case ComparisonOperator.IS_NOT_NULL:
            return column.is_not(None)
        case ComparisonOperator.BETWEEN:
            low, high = value
            return column.between(low, high)

    msg = f"Unsupported operator: {criterion.operator}"
    raise ValueError(msg)


def compile_criterion(criterion: Criterion, entity_type: type[t.Any]) -> t.Any:
    """Translate a portable criterion into a SQLAlchemy boolean expression."""
    if isinstance(criterion, FieldCriterion):
        return _compile_field(criterion, entity_type)
    if isinstance(criterion, AndCriterion):
        return and_(*(compile_criterion(c, entity_type) for c in criterion.criteria))
    if isinstance(criterion, OrCriterion):
        return or_(*(compile_criterion(c, entity_type) for c in criterion.criteria))
    if isinstance(criterion, NotCriterion):
        return not_(compile_criterion(criterion.criterion, entity_type))

    msg = f"Cannot compile {type(criterion).__name__} to SQL"
    raise TypeError(msg)


def _loader_for(entity_type: type[t.Any], path: str) -> t.Any:
    """Build a ``selectinload`` chain for a dotted relationship path."""
    option = None
    current = entity_type
    for name in path.split("."):
        relationship = sa_inspect(current).relationships.get(name)
        if relationship is None:
            msg = (
                f"Cannot include {path!r}: {current.__name__}.{name} "
                "is not a relationship"
            )
            raise ArgumentError(msg)
        attribute = getattr(current, name)
        option = (
            selectinload(attribute)
            if option is None
            else option.selectinload(attribute)
        )
        current = relationship.mapper.class_
    return option


class SqlAlchemyQueryable[T](Queryable[T]):
    """Query compiled to a single SQL ``SELECT``; projections run after fetch."""

    def __init__(
        self,
        session: Session,
        entity_type: type[t.Any],
        statement: Select[t.Any] | None = None,
        projection: Callable[[t.Any], t.Any] | None = None,
    ) -> None:
        super().__init__(entity_type, projected=projection is not None)
        self._session = session
        self._statement = (
            statement if statement is not None else select(entity_type)
        )
        self._projection = projection

    def _derive(self, statement: Select[t.Any]) -> "SqlAlchemyQueryable[T]":
        if self._projection is not None:
            msg = "Compose filters, ordering and paging before the projection"
            raise TypeError(msg)
        return SqlAlchemyQueryable(self._session, self.entity_type, statement)

    @property
    def statement(self) -> Select[t.Any]:
        return self._statement

    def where(self, condition: Condition) -> "SqlAlchemyQueryable[T]":
        if isinstance(condition, Criterion):
            clause = compile_criterion(condition, self.entity_type)
        elif isinstance(condition, ColumnElement):
            clause = condition
        else:
            msg = (
                "The SQL engine needs a Criterion or a SQLAlchemy expression, "
                f"got {type(condition).__name__}"
            )
            raise TypeError(msg)
        return self._derive(self._statement.where(clause))

    def select[U](self, projection: Callable[[T], U]) -> "SqlAlchemyQueryable[U]":
        if self._projection is not None:
            first = self._projection

            def composed(entity: t.Any) -> t.Any:
                return projection(first(entity))

            return SqlAlchemyQueryable(
                self._session,
                self.entity_type,
                self._statement,
                composed,
            )
        return SqlAlchemyQueryable(
            self._session,
            self.entity_type,
            self._statement,
            projection,
        )

    def order_by(self, field: str, descending: bool = False) -> "SqlAlchemyQueryable[T]":
        column = _column_for(self.entity_type, field)
        # NULLs sort last either way, matching the memory engine.
        ordering = [column.is_(None), column.desc() if descending else column.asc()]
        return self._derive(self._statement.order_by(*ordering))

    def skip(self, count: int) -> "SqlAlchemyQueryable[T]":
        return self._derive(self._statement.offset(count))

    def take(self, count: int) -> "SqlAlchemyQueryable[T]":
        return self._derive(self._statement.limit(count))

    def _include(self, path: str) -> "SqlAlchemyQueryable[T]":
        return self._derive(
            self._statement.options(_loader_for(self.entity_type, path)),
        )

    def to_list(self) -> list[T]:
        results = list(self._session.scalars(self._statement).unique().all())
        if self._projection is not None:
            return [self._projection(entity) for entity in results]
        return results

    def any(self) -> bool:
        return bool(self._session.scalar(select(self._statement.exists())))

    def count(self) -> int:
        subquery = self._statement.order_by(None).subquery()
        return int(
            self._session.scalar(select(func.count()).select_from(subquery)) or 0,
        )


class SqlAlchemySession(StorageSession):
    """Storage session backed by one SQLAlchemy ORM ``Session``."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._written = 0
        event.listen(session, "before_flush", self._count_flush)
        event.listen(session, "after_rollback", self._reset_written)

    def _count_flush(self, session: Session, flush_context: t.Any, instances: t.Any) -> None:
        # Autoflush empties new/dirty/deleted long before commit.
        dirty = [entity for entity in session.dirty if session.is_modified(entity)]
        self._written += len(session.new) + len(dirty) + len(session.deleted)

    def _reset_written(self, session: Session) -> None:
        self._written = 0

    @property
    def native(self) -> Session:
        """The wrapped SQLAlchemy session, for engine-specific work."""
        return self._session

    def query[E](self, entity_type: type[E]) -> SqlAlchemyQueryable[E]:
        return SqlAlchemyQueryable(self._session, entity_type)

    def find[E](self, entity_type: type[E], key: t.Any) -> E | None:
        return self._session.get(entity_type, key)

    def add(self, entity: t.Any) -> None:
        self._session.add(entity)

    def remove(self, entity: t.Any) -> None:
        if entity in self._session.new:
            self._session.expunge(entity)
            return
        state = sa_inspect(entity)
        if state.detached or state.transient:
            entity = self._session.merge(entity)
        self._session.delete(entity)

    def save_changes(self) -> int:
        self._session.commit()
        written, self._written = self._written, 0
        logger.debug(f"SQL session committed {written} change(s)")
        return written

    async def can_connect(self) -> bool:
        engine = self._session.get_bind()

        def probe() -> bool:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True

        try:
            return await to_thread.run_sync(probe, abandon_on_cancel=True)
        except SQLAlchemyError as e:
            logger.debug(f"Database connectivity probe failed: {e}")
            return False

    def close(self) -> None:
        self._written = 0
        self._session.close()


class SqlAlchemyDatabase:
    """Engine plus session factory for one database URL.

    Args:
        url: SQLAlchemy database URL; defaults to ``settings.database_url``
        settings: Data access settings; defaults to the process-wide settings
    """

    def __init__(
        self,
        url: str | None = None,
        settings: DataAccessSettings | None = None,
        **engine_kwargs: t.Any,
    ) -> None:
        self.settings = settings or get_settings()
        self.url = url or self.settings.database_url
        if self.url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        self.engine: Engine = create_engine(
            self.url,
            echo=self.settings.echo,
            **engine_kwargs,
        )
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    def session(self) -> SqlAlchemySession:
        """Open a new session (transactional scope)."""
        return SqlAlchemySession(self._sessions())

    def create_all(self, metadata: MetaData) -> None:
        """Create every table in ``metadata`` that does not exist yet."""
        metadata.create_all(self.engine)

    def migration_source(self, script_location: str) -> "AlembicMigrationSource":
        return AlembicMigrationSource(self.engine, script_location)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.debug("Disposed SQL engine")


class AlembicMigrationSource:
    """Lists Alembic revisions that are defined but not applied to the database."""

    def __init__(self, engine: Engine, script_location: str) -> None:
        self.engine = engine
        self.script_location = script_location

    def _pending(self) -> list[str]:
        from alembic.config import Config
        from alembic.runtime.migration import MigrationContext
        from alembic.script import ScriptDirectory

        config = Config()
        config.set_main_option("script_location", self.script_location)
        scripts = ScriptDirectory.from_config(config)

        with self.engine.connect() as connection:
            current = MigrationContext.configure(connection).get_current_heads()

        applied: set[str] = set()
        if current:
            applied = {
                revision.revision
                for revision in scripts.iterate_revisions(current, "base")
                if revision is not None
            }
        # walk_revisions yields newest first.
        pending = [
            revision
            for revision in scripts.walk_revisions()
            if revision.revision not in applied
        ]
        return [
            f"{revision.revision} ({revision.doc})" if revision.doc else revision.revision
            for revision in reversed(pending)
        ]

    async def pending_migrations(self) -> list[str]:
        return await to_thread.run_sync(self._pending)


__all__ = [
    "AlembicMigrationSource",
    "SqlAlchemyDatabase",
    "SqlAlchemyQueryable",
    "SqlAlchemySession",
    "compile_criterion",
]
