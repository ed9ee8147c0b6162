"""Storage engine seam and shipped engines.

Engines are imported from their own modules:

- :mod:`repokit.adapters.storage.memory` for the in-memory engine
- :mod:`repokit.adapters.storage.sql` for the SQLAlchemy engine
"""

from ._base import Condition, Queryable, StorageSession

__all__ = ["Condition", "Queryable", "StorageSession"]
