"""Provides utilities to work with Python's collection types (lists, sets, tuples, ...) more conveniently."""
from __future__ import annotations

import itertools
from collections.abc import Collection, Generator, Iterable, Sequence
from typing import TypeVar


T = TypeVar("T")


def flatten(xs: Iterable[Iterable[T] | T]) -> list[T]:
    """Unwraps one level of nesting. Elements that are not iterable (or are strings) are kept as-is."""
    flattened: list[T] = []
    for elem in xs:
        if isinstance(elem, Iterable) and not isinstance(elem, str):
            flattened.extend(elem)
        else:
            flattened.append(elem)
    return flattened


def powerset(lst: Collection[T], *, min_size: int = 0) -> Iterable[tuple[T, ...]]:
    """Calculates the powerset of the provided collection.

    The subsets are produced in order of increasing size. Within each size, subsets appear in the order of
    `itertools.combinations`, i.e. they respect the iteration order of `lst`.

    Parameters
    ----------
    lst : Collection[T]
        The "set" *S*
    min_size : int, optional
        Skip all subsets that are smaller than this. By default, the empty set is included.

    Returns
    -------
    Iterable[tuple[T, ...]]
        The powerset of *S*. Each tuple correponds to a specific subset.
    """
    return itertools.chain.from_iterable(
        itertools.combinations(lst, size) for size in range(min_size, len(lst) + 1)
    )


def longest_common_prefix(a: Sequence[T], b: Sequence[T]) -> tuple[T, ...]:
    """Determines the longest prefix that is shared by both sequences."""
    prefix: list[T] = []
    for x, y in zip(a, b):
        if x != y:
            break
        prefix.append(x)
    return tuple(prefix)


def pairs(lst: Sequence[T]) -> Generator[tuple[T, T], None, None]:
    """Provides all pairs of elements of the given sequence, disregarding order and identical pairs.

    The pairs are produced in a stable order: *(lst[0], lst[1]), (lst[0], lst[2]), ..., (lst[1], lst[2]), ...*
    """
    for a_idx, a in enumerate(lst):
        for b in lst[a_idx + 1:]:
            yield a, b
