"""repokit: storage-agnostic repositories, query specifications and units of work."""

from .config import DataAccessSettings, get_settings
from .maybe import Maybe
from .repository import (
    FetchStrategy,
    Repository,
    RepositoryError,
    Specification,
    UnitOfWork,
)

__version__ = "0.1.0"

__all__ = [
    "DataAccessSettings",
    "FetchStrategy",
    "Maybe",
    "Repository",
    "RepositoryError",
    "Specification",
    "UnitOfWork",
    "__version__",
    "get_settings",
]
