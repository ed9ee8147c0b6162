"""Fetch strategies for eager loading of related entities.

A fetch strategy is an ordered list of dotted include paths, such as
``"customer.address"``, naming the related entities a storage engine must load
together with a query instead of fetching them one entity at a time (the
"N+1" access pattern).

Paths can be given as a dotted string, as a sequence of property names, or as a
navigation callable (``lambda order: order.customer.address``). Callables are
evaluated against a recording proxy rather than parsed, and anything other than
a plain chain of attribute accesses is rejected when the strategy is built.
"""

import keyword

import typing as t
from collections.abc import Callable, Iterable, Iterator, Sequence

from ._base import UnsupportedExpressionError

type IncludePath = str | Sequence[str] | Callable[[t.Any], t.Any]


def _unsupported(operation: str) -> Callable[..., t.NoReturn]:
    def _raise(self: "_PathRecorder", *args: t.Any, **kwargs: t.Any) -> t.NoReturn:
        names = object.__getattribute__(self, "_repokit_names")
        prefix = ".".join(names) or "<entity>"
        msg = (
            f"Include paths may only navigate properties; "
            f"'{operation}' applied to '{prefix}' is not supported"
        )
        raise UnsupportedExpressionError(msg)

    return _raise


class _PathRecorder:
    """Stand-in entity that records the chain of attributes accessed on it."""

    __slots__ = ("_repokit_names",)

    def __init__(self, names: tuple[str, ...] = ()) -> None:
        object.__setattr__(self, "_repokit_names", names)

    def __getattr__(self, name: str) -> "_PathRecorder":
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        names = object.__getattribute__(self, "_repokit_names")
        return _PathRecorder((*names, name))

    def __repr__(self) -> str:
        names = object.__getattribute__(self, "_repokit_names")
        return f"<include path {'.'.join(names) or '<entity>'}>"

    __setattr__ = _unsupported("assignment")
    __delattr__ = _unsupported("deletion")
    __call__ = _unsupported("call")
    __getitem__ = _unsupported("subscript")
    __setitem__ = _unsupported("subscript assignment")
    __iter__ = _unsupported("iteration")
    __len__ = _unsupported("len")
    __contains__ = _unsupported("in")
    __bool__ = _unsupported("truth test")
    __str__ = _unsupported("str")
    __format__ = _unsupported("format")
    __eq__ = _unsupported("==")
    __ne__ = _unsupported("!=")
    __lt__ = _unsupported("<")
    __le__ = _unsupported("<=")
    __gt__ = _unsupported(">")
    __ge__ = _unsupported(">=")
    __add__ = _unsupported("+")
    __radd__ = _unsupported("+")
    __sub__ = _unsupported("-")
    __rsub__ = _unsupported("-")
    __mul__ = _unsupported("*")
    __rmul__ = _unsupported("*")
    __truediv__ = _unsupported("/")
    __rtruediv__ = _unsupported("/")
    __mod__ = _unsupported("%")
    __and__ = _unsupported("&")
    __rand__ = _unsupported("&")
    __or__ = _unsupported("|")
    __ror__ = _unsupported("|")
    __invert__ = _unsupported("~")
    __neg__ = _unsupported("-")
    __hash__ = None  # type: ignore[assignment]


def _validate_names(names: Sequence[str], source: t.Any) -> tuple[str, ...]:
    if not names:
        msg = "An include path must name at least one property"
        raise UnsupportedExpressionError(msg, source)
    for name in names:
        if not isinstance(name, str):
            msg = f"Include path segments must be strings, got {type(name).__name__}"
            raise UnsupportedExpressionError(msg, source)
        if not name.isidentifier() or keyword.iskeyword(name):
            msg = f"Invalid property name {name!r} in include path {source!r}"
            raise UnsupportedExpressionError(msg, source)
    return tuple(names)


def path_from_callable(navigation: Callable[[t.Any], t.Any]) -> str:
    """Convert a navigation callable into a dotted include path.

    Raises:
        UnsupportedExpressionError: If ``navigation`` does anything other than
            access a chain of attributes on its argument.
    """
    try:
        result = navigation(_PathRecorder())
    except UnsupportedExpressionError:
        raise
    except Exception as e:
        msg = f"Include path callable could not be evaluated as a property chain: {e}"
        raise UnsupportedExpressionError(msg, navigation) from e

    if type(result) is not _PathRecorder:
        msg = (
            "Include path callable must return a property of the entity, "
            f"got {type(result).__name__}"
        )
        raise UnsupportedExpressionError(msg, navigation)

    names = object.__getattribute__(result, "_repokit_names")
    return ".".join(_validate_names(names, navigation))


def to_fetch_path(path: IncludePath) -> str:
    """Normalise any supported include path form to a dotted string."""
    if isinstance(path, str):
        return ".".join(_validate_names(path.split("."), path))
    if callable(path):
        return path_from_callable(path)
    if isinstance(path, Sequence):
        return ".".join(_validate_names(list(path), path))

    msg = f"Unsupported include path type: {type(path).__name__}"
    raise UnsupportedExpressionError(msg, path)


class FetchStrategy[E]:
    """Ordered collection of include paths for eager loading.

    Builder methods append and return the same instance, so calls chain::

        strategy = FetchStrategy().include("customer").include(lambda o: o.lines)

    Paths are kept in insertion order and are not deduplicated.
    """

    def __init__(self, paths: Iterable[IncludePath] = ()) -> None:
        self._paths: list[str] = []
        for path in paths:
            self.include(path)

    @property
    def include_paths(self) -> tuple[str, ...]:
        return tuple(self._paths)

    def include(self, path: IncludePath) -> t.Self:
        """Append an include path given as a string, name sequence or callable."""
        self._paths.append(to_fetch_path(path))
        return self

    def include_path(self, *names: str) -> t.Self:
        """Append an include path given as individual property names."""
        self._paths.append(".".join(_validate_names(names, names)))
        return self

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __bool__(self) -> bool:
        return bool(self._paths)

    def __repr__(self) -> str:
        return f"FetchStrategy({list(self._paths)!r})"


__all__ = [
    "FetchStrategy",
    "IncludePath",
    "path_from_callable",
    "to_fetch_path",
]
