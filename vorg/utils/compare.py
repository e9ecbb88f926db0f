# vorg/utils/compare.py
# First-divergence comparison of two lists sorted by the same key.

from __future__ import annotations
from enum import Enum
from typing import Callable, NamedTuple, Optional, Sequence, TypeVar

T = TypeVar("T")


class Divergence(Enum):
    MISSING = "missing"         # in expected, not in actual
    UNEXPECTED = "unexpected"   # in actual, not in expected
    UNEQUAL = "unequal"         # same key, equality check failed


class CompareResult(NamedTuple):
    divergence: Divergence
    item: object


def _identity(x):
    return x


def _always_equal(a, b) -> bool:
    return True


def compare_sorted(
    actual: Sequence[T],
    expected: Sequence[T],
    key: Callable[[T], object] = _identity,
    equal: Callable[[T, T], bool] = _always_equal,
) -> Optional[CompareResult]:
    """
    Walk `actual` and `expected` (both ascending by `key`) in step and return
    the first divergence, or None when they match.

    MISSING and UNEQUAL carry the expected element; UNEXPECTED carries the
    actual one.
    """
    i = j = 0
    while i < len(actual) and j < len(expected):
        a, e = actual[i], expected[j]
        ka, ke = key(a), key(e)
        if ka < ke:
            return CompareResult(Divergence.UNEXPECTED, a)
        if ka > ke:
            return CompareResult(Divergence.MISSING, e)
        if not equal(a, e):
            return CompareResult(Divergence.UNEQUAL, e)
        i += 1
        j += 1
    if i < len(actual):
        return CompareResult(Divergence.UNEXPECTED, actual[i])
    if j < len(expected):
        return CompareResult(Divergence.MISSING, expected[j])
    return None
