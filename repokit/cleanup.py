"""Deterministic resource release for repokit objects.

Objects that own a storage handle mix in :class:`DisposableMixin`. Disposal is
explicit (``dispose()``/``close()``), scoped (``with``/``async with``) and runs
exactly once. A finaliser acts as a safety net that only releases the
registered handles.
"""

import typing as t
from contextlib import suppress

from .logger import logger

_RELEASE_METHODS = ("close", "dispose", "release")


def release_resource(resource: t.Any) -> bool:
    """Release a single resource using the first close-like method it has.

    Returns:
        True if a release method was found and called.
    """
    if resource is None:
        return False

    for method_name in _RELEASE_METHODS:
        method = getattr(resource, method_name, None)
        if callable(method):
            method()
            return True
    return False


class DisposableMixin:
    """Mixin giving an object idempotent, deterministic disposal.

    Subclasses register the handles they own with :meth:`register_resource`
    and may override :meth:`_dispose_managed` for work that must only run
    during explicit disposal (logging, bookkeeping). Handles are released in
    reverse registration order.
    """

    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def register_resource(self, resource: t.Any) -> None:
        """Register a resource for release on disposal."""
        if not any(resource is r for r in self._resources):
            self._resources.append(resource)

    def _dispose_managed(self) -> None:
        """Hook for subclasses; called once, before handles are released."""

    def _release_resources(self) -> list[str]:
        errors = []
        for resource in reversed(self._resources):
            try:
                release_resource(resource)
            except Exception as e:
                errors.append(f"{type(resource).__name__}: {e}")
        self._resources.clear()
        return errors

    def dispose(self) -> None:
        """Release owned resources. Calls after the first have no effect."""
        if self._disposed:
            return
        self._disposed = True
        try:
            self._dispose_managed()
        finally:
            errors = self._release_resources()
            if errors:
                logger.warning(f"Resource release errors: {'; '.join(errors)}")

    def close(self) -> None:
        """Alias for :meth:`dispose`."""
        self.dispose()

    def __enter__(self) -> t.Self:
        return self

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        self.dispose()

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        self.dispose()

    def __del__(self) -> None:
        # Finaliser path: release handles only, never log or raise.
        if getattr(self, "_disposed", True):
            return
        self._disposed = True
        with suppress(Exception):
            for resource in reversed(self._resources):
                with suppress(Exception):
                    release_resource(resource)
            self._resources.clear()
