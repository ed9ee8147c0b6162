"""Optional result type.

``Maybe`` represents zero or one value without using ``None`` as a stand-in
for "no value". It behaves like a read-only collection of at most one item, so
it can be iterated, counted and tested for truthiness without ever raising.
"""

import typing as t
from collections.abc import Callable, Iterator


class Maybe[T]:
    """Zero or one value of type ``T``.

    Build instances with :meth:`empty`, :meth:`from_value` or
    :meth:`from_optional`; the constructor is not part of the public API.
    """

    __slots__ = ("_has_value", "_value")

    def __init__(self, value: t.Any = None, *, _has_value: bool = False) -> None:
        self._has_value = _has_value
        self._value = value

    @classmethod
    def empty(cls) -> "Maybe[t.Any]":
        """Return the shared empty instance."""
        return EMPTY

    @classmethod
    def from_value(cls, value: T) -> "Maybe[T]":
        """Wrap a value that must not be ``None``.

        Raises:
            ValueError: If ``value`` is ``None``.
        """
        if value is None:
            msg = "Maybe.from_value() requires a value; use Maybe.empty() for no value"
            raise ValueError(msg)
        return cls(value, _has_value=True)

    @classmethod
    def from_optional(cls, value: T | None) -> "Maybe[T]":
        """Convert a possibly-absent value, mapping ``None`` to empty."""
        if value is None:
            return EMPTY
        return cls.from_value(value)

    @property
    def has_value(self) -> bool:
        return self._has_value

    @property
    def is_empty(self) -> bool:
        return not self._has_value

    @property
    def value(self) -> T:
        """The wrapped value.

        Raises:
            ValueError: If this instance is empty.
        """
        if not self._has_value:
            msg = "Maybe is empty; check has_value or use value_or()"
            raise ValueError(msg)
        return t.cast("T", self._value)

    def value_or(self, default: T) -> T:
        return t.cast("T", self._value) if self._has_value else default

    def single_or_none(self) -> T | None:
        return t.cast("T", self._value) if self._has_value else None

    def map[U](self, func: Callable[[T], U | None]) -> "Maybe[U]":
        """Apply ``func`` to the value, if any. A ``None`` result yields empty."""
        if not self._has_value:
            return EMPTY
        return Maybe.from_optional(func(t.cast("T", self._value)))

    def __bool__(self) -> bool:
        return self._has_value

    def __len__(self) -> int:
        return 1 if self._has_value else 0

    def __iter__(self) -> Iterator[T]:
        if self._has_value:
            yield t.cast("T", self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Maybe):
            return NotImplemented
        if not self._has_value or not other._has_value:
            return self._has_value == other._has_value
        return bool(self._value == other._value)

    def __hash__(self) -> int:
        if not self._has_value:
            return hash((Maybe, False))
        try:
            return hash((Maybe, True, self._value))
        except TypeError:
            # Unhashable payloads (mutable entities) share one bucket.
            return hash((Maybe, True))

    def __repr__(self) -> str:
        if not self._has_value:
            return "Maybe.empty()"
        return f"Maybe.from_value({self._value!r})"


EMPTY: Maybe[t.Any] = Maybe()


def as_maybe[T](value: T | None) -> Maybe[T]:
    """Convert a possibly-``None`` value into a :class:`Maybe`."""
    return Maybe.from_optional(value)
