"""Ordering primitives for condition expressions.

Tri-state comparison over heterogeneous ordered values, stable sorting,
list reversal and ordered pairs. Values may be plain Python values or the
expression language's own value types, which subclass them.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from celpy import celtypes

from ..utils.timestamps import parse_timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Expression maps only accept their own key type
_METADATA = celtypes.StringType("metadata")
_CREATION_TIMESTAMP = celtypes.StringType("creationTimestamp")


class SortOrder(Enum):
    """Sort direction accepted by ``sort`` and ``sortBy``."""

    ASCENDING = "asc"
    DESCENDING = "desc"

    @classmethod
    def parse(cls, value: Any) -> "SortOrder":
        """Parse an order string, case-insensitively.

        Raises:
            ValueError: If the value is not "asc" or "desc"
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"unknown order: {value!r}")
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"unknown order: {value}") from None


class Comparison(IntEnum):
    """Three-way comparison result."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


class OrderedPair(celtypes.MapType):
    """A ``{order, value}`` record built by ``pair()``.

    Being a map, its fields are readable from expressions (``p.order``);
    being a distinct type, ``sort`` can tell pairs apart from plain records.
    """

    ORDER_KEY = celtypes.StringType("order")
    VALUE_KEY = celtypes.StringType("value")

    @property
    def order(self) -> Any:
        return self[self.ORDER_KEY]

    @property
    def value(self) -> Any:
        return self[self.VALUE_KEY]


def _ordering_kind(value: Any) -> Optional[str]:
    # BoolType subclasses int, so it must be checked before numbers
    if isinstance(value, (bool, celtypes.BoolType)):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bytes):
        return "bytes"
    if isinstance(value, datetime):
        return "timestamp"
    if isinstance(value, timedelta):
        return "duration"
    return None


def is_orderable(value: Any) -> bool:
    """Whether a value implements the ordering capability."""
    return _ordering_kind(value) is not None


def _native(value: Any, kind: str) -> Any:
    if kind == "bool":
        return bool(value)
    if kind == "number":
        return float(value) if isinstance(value, float) else int(value)
    if kind == "string":
        return str(value)
    if kind == "bytes":
        return bytes(value)
    if kind == "timestamp":
        moment = datetime(
            value.year, value.month, value.day, value.hour, value.minute, value.second,
            value.microsecond, tzinfo=value.tzinfo or timezone.utc,
        )
        return moment
    return timedelta(days=value.days, seconds=value.seconds, microseconds=value.microseconds)


def compare(left: Any, right: Any) -> Comparison:
    """Compare two values of the same ordered kind.

    Numbers of any kind compare with each other; every other kind only
    compares with itself.

    Raises:
        TypeError: If either value is not orderable or the kinds differ
    """
    left_kind = _ordering_kind(left)
    right_kind = _ordering_kind(right)
    if left_kind is None or right_kind is None:
        raise TypeError(f"no ordering between {type(left).__name__} and {type(right).__name__}")
    if left_kind != right_kind:
        raise TypeError(f"cannot compare {left_kind} with {right_kind}")

    a = _native(left, left_kind)
    b = _native(right, right_kind)
    if a < b:
        return Comparison.LESS
    if a > b:
        return Comparison.GREATER
    return Comparison.EQUAL


def _stable_sort(items: Iterable[Any], order: SortOrder, key: Callable[[Any], Any]) -> List[Any]:
    # sorted() is stable in both directions, so equal keys keep input order
    return sorted(
        items,
        key=functools.cmp_to_key(lambda a, b: int(compare(key(a), key(b)))),
        reverse=order is SortOrder.DESCENDING,
    )


def sort_values(items: Sequence[Any], order: Any = SortOrder.ASCENDING) -> List[Any]:
    """Stable sort of comparable values.

    Args:
        items: Values of one ordered kind
        order: SortOrder or its string form ("asc"/"desc", any case)

    Returns:
        New sorted list

    Raises:
        ValueError: Unknown order
        TypeError: Incomparable elements
    """
    direction = SortOrder.parse(order)
    return _stable_sort(items, direction, key=lambda item: item)


def sort_pairs(pairs: Sequence[OrderedPair], order: Any = SortOrder.ASCENDING) -> List[Any]:
    """Sort ordered pairs by their ``order`` field and return their values."""
    direction = SortOrder.parse(order)
    return [pair.value for pair in _stable_sort(pairs, direction, key=lambda pair: pair.order)]


def creation_timestamp(record: Mapping) -> datetime:
    """Read ``metadata.creationTimestamp`` of an object record.

    A record without one sorts as the zero time, like an object that has
    not been persisted yet.
    """
    metadata = record.get(_METADATA) if record else None
    if not isinstance(metadata, Mapping):
        return _EPOCH

    raw = metadata.get(_CREATION_TIMESTAMP)
    if raw is None:
        return _EPOCH
    if isinstance(raw, datetime):
        return _native(raw, "timestamp")
    return parse_timestamp(str(raw))


def sort_unstructured(records: Sequence[Mapping], order: Any = SortOrder.ASCENDING) -> List[Any]:
    """Stable sort of object records by creation timestamp.

    Raises:
        ValueError: Unknown order or an unparseable timestamp
    """
    direction = SortOrder.parse(order)
    return _stable_sort(records, direction, key=creation_timestamp)


def reverse_list(items: Sequence[Any]) -> List[Any]:
    """Positional reversal; works for any element type."""
    return list(reversed(items))


def make_pair(order: Any, value: Any) -> OrderedPair:
    """Build an ordered pair.

    Raises:
        TypeError: If ``order`` does not implement the ordering capability
    """
    if not is_orderable(order):
        raise TypeError(f"unable to build ordered pair with value {order!r}")
    return OrderedPair({OrderedPair.ORDER_KEY: order, OrderedPair.VALUE_KEY: value})
