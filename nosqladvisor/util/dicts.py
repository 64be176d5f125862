"""Contains utilities to access and modify dictionaries more conveniently."""
from __future__ import annotations
from typing import TypeVar


K = TypeVar("K")
V = TypeVar("V")


def invert(mapping: dict[K, V]) -> dict[V, K]:
    """Inverts the `key -> value` mapping of a dict to become `value -> key` instead.

    Duplicate values are not handled in any special way, the last key wins.
    """
    return {v: k for k, v in mapping.items()}
