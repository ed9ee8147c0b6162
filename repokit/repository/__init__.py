"""Repository Layer for repokit.

This module provides a storage-agnostic data access layer with:
- Domain entity contract and repository error hierarchy
- Fetch strategies for eager loading of related entities
- Query Specification pattern with portable criteria
- Generic repository over one entity type
- Unit of Work pattern for atomic commits
- Start-up check for pending schema migrations
"""

from ._base import (
    DomainEntity,
    DuplicateEntityError,
    MultipleResultsError,
    PendingMigrationsError,
    ProjectedFetchStrategyError,
    RepositoryError,
    RepositoryProtocol,
    UnitOfWorkDisposedError,
    UnsupportedExpressionError,
)
from .fetch import FetchStrategy, IncludePath
from .migrations import MigrationChecker, MigrationSource
from .repository import Repository
from .specifications import (
    AllEntities,
    ById,
    ComparisonOperator,
    Criterion,
    FieldCriterion,
    QuerySpecification,
    Satisfying,
    Specification,
)
from .unit_of_work import (
    UnitOfWork,
    UnitOfWorkFactory,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)

__all__ = [
    "AllEntities",
    "ById",
    "ComparisonOperator",
    "Criterion",
    "DomainEntity",
    "DuplicateEntityError",
    "FetchStrategy",
    "FieldCriterion",
    "IncludePath",
    "MigrationChecker",
    "MigrationSource",
    "MultipleResultsError",
    "PendingMigrationsError",
    "ProjectedFetchStrategyError",
    "QuerySpecification",
    "Repository",
    "RepositoryError",
    "RepositoryProtocol",
    "Satisfying",
    "Specification",
    "UnitOfWork",
    "UnitOfWorkDisposedError",
    "UnitOfWorkFactory",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
    "UnsupportedExpressionError",
]
