"""Key validation and ordering used by the local engine's ``cmp``."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

from versionstore.errors import EngineError

# Type ranks: number < date < string < binary < array.
_NUMBER, _DATE, _STRING, _BINARY, _ARRAY = range(5)


def _rank(key: Any) -> int:
    if isinstance(key, bool):
        raise EngineError("DataError", f"Booleans are not valid keys: {key!r}")
    if isinstance(key, (int, float)):
        if isinstance(key, float) and math.isnan(key):
            raise EngineError("DataError", "NaN is not a valid key")
        return _NUMBER
    if isinstance(key, (datetime, date)):
        return _DATE
    if isinstance(key, str):
        return _STRING
    if isinstance(key, (bytes, bytearray, memoryview)):
        return _BINARY
    if isinstance(key, (list, tuple)):
        return _ARRAY
    raise EngineError("DataError", f"Not a valid key: {key!r}")


def _date_value(key: date) -> float:
    if isinstance(key, datetime):
        return key.timestamp()
    return datetime(key.year, key.month, key.day).timestamp()


def _sign(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_keys(first: Any, second: Any) -> int:
    """Return -1, 0 or 1 ordering two keys; raises EngineError(DataError) on invalid keys."""
    validate_key(first)
    validate_key(second)
    return _compare(first, second)


def _compare(first: Any, second: Any) -> int:
    rank_a, rank_b = _rank(first), _rank(second)
    if rank_a != rank_b:
        return _sign(rank_a, rank_b)
    if rank_a == _DATE:
        return _sign(_date_value(first), _date_value(second))
    if rank_a == _BINARY:
        return _sign(bytes(first), bytes(second))
    if rank_a == _ARRAY:
        for item_a, item_b in zip(first, second):
            result = _compare(item_a, item_b)
            if result:
                return result
        return _sign(len(first), len(second))
    return _sign(first, second)


def validate_key(key: Any) -> None:
    """Raise EngineError(DataError) unless ``key`` is orderable."""
    rank = _rank(key)
    if rank == _ARRAY:
        for item in key:
            validate_key(item)
