"""Generic repository.

A :class:`Repository` is a collection-like view over the entities of one type
inside one :class:`~repokit.repository.unit_of_work.UnitOfWork`. It applies
query specifications and their fetch strategies to the unit of work's storage
session and registers additions and removals in its tracked change set.
Nothing is persisted until the unit of work commits.
"""

import typing as t
from collections.abc import Iterable
from typing import Any

from repokit.adapters.storage._base import Queryable, StorageSession
from repokit.config import DataAccessSettings
from repokit.logger import logger
from repokit.maybe import Maybe

from ._base import MultipleResultsError, ProjectedFetchStrategyError
from .specifications import Specification

if t.TYPE_CHECKING:
    from .unit_of_work import UnitOfWork


class Repository[E, K]:
    """Repository bound to one entity type and one unit of work.

    Instances are created by :meth:`UnitOfWork.repository` and become invalid
    once their unit of work is disposed; every operation then raises
    :class:`~repokit.repository._base.UnitOfWorkDisposedError`.
    """

    def __init__(
        self,
        unit_of_work: "UnitOfWork",
        entity_type: type[E],
        settings: DataAccessSettings,
    ) -> None:
        self._unit_of_work = unit_of_work
        self.entity_type = entity_type
        self.settings = settings
        self._logger = logger.bind(
            entity_type=entity_type.__name__,
            transaction_id=unit_of_work.transaction_id,
        )

    @property
    def unit_of_work(self) -> "UnitOfWork":
        return self._unit_of_work

    def _session(self, operation: str) -> StorageSession:
        return self._unit_of_work.session_for(operation)

    def _build_query[O](
        self,
        specification: Specification[E, O],
        operation: str,
    ) -> Queryable[O]:
        base = self._session(operation).query(self.entity_type)
        query = specification.get_query(base)
        include_paths = specification.fetch_strategy.include_paths
        if query.is_projected and include_paths:
            raise ProjectedFetchStrategyError(repr(specification), include_paths)
        for path in include_paths:
            query = query.include(path)
        return query

    def get_all(self) -> list[E]:
        """Return every entity of this type visible in the unit of work."""
        return self._session("get_all").query(self.entity_type).to_list()

    def get_maybe(self, id_or_spec: K | Specification[E, Any]) -> Maybe[Any]:
        """Look up an entity by key, or the single result of a specification.

        A key lookup yields an empty result when the entity does not exist. A
        specification is delegated to :meth:`get_maybe_satisfying`.
        """
        if isinstance(id_or_spec, Specification):
            return self.get_maybe_satisfying(id_or_spec)
        return self._get_by_id(t.cast("K", id_or_spec))

    def _get_by_id(self, key: K) -> Maybe[E]:
        session = self._session("get_maybe")
        try:
            entity = session.find(self.entity_type, key)
        except Exception as e:
            if not self.settings.treat_lookup_faults_as_not_found:
                raise
            self._logger.opt(exception=e).warning(
                f"Lookup of {self.entity_type.__name__} id={key!r} failed; "
                f"treating as not found: {e}",
            )
            return Maybe.empty()
        return Maybe.from_optional(entity)

    def get_maybe_satisfying[O](self, specification: Specification[E, O]) -> Maybe[O]:
        """Return the only result of ``specification``, or empty when there is none.

        Raises:
            MultipleResultsError: If the specification yields more than one result
        """
        results = self._build_query(specification, "get_maybe_satisfying").to_list()
        if len(results) > 1:
            raise MultipleResultsError(self.entity_type.__name__, len(results))
        return Maybe.from_optional(results[0]) if results else Maybe.empty()

    def all_satisfying[O](self, specification: Specification[E, O]) -> list[O]:
        """Return every result of ``specification``."""
        return self._build_query(specification, "all_satisfying").to_list()

    def any(self, specification: Specification[E, Any]) -> bool:
        """Return whether ``specification`` has at least one result."""
        return self._build_query(specification, "any").any()

    def count(self, specification: Specification[E, Any] | None = None) -> int:
        """Return the number of results of ``specification``, or of all entities."""
        if specification is None:
            return self._session("count").query(self.entity_type).count()
        return self._build_query(specification, "count").count()

    def add(self, entity: E) -> None:
        """Register ``entity`` for insertion on the next commit."""
        self._session("add").add(entity)

    def add_range(self, entities: Iterable[E]) -> None:
        """Register each entity for insertion, in order.

        Registration stops at the first rejected entity; the ones before it
        stay registered.
        """
        session = self._session("add_range")
        for entity in entities:
            session.add(entity)

    def remove(self, entity: E) -> None:
        """Register ``entity`` for deletion on the next commit."""
        self._session("remove").remove(entity)

    def remove_range(self, entities: Iterable[E]) -> None:
        """Register each entity for deletion, in order."""
        session = self._session("remove_range")
        for entity in entities:
            session.remove(entity)

    def __repr__(self) -> str:
        return f"Repository[{self.entity_type.__name__}]"


__all__ = ["Repository"]
