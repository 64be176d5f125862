"""Contains utilities to export advisor objects (indexes, plans, search results) to JSON.

More specifically, this module introduces the `JsonizeEncoder`, which can be accessed via the `to_json` utility method. The
encoder transforms instances of any class that provides a `__json__` method. This method does not take any (required)
parameters and returns a JSON-izeable representation of the current instance, e.g. a `dict` or a `list`.

The export is one-way only: JSON does not store any type information, hence no loading utilities are provided.
"""

from __future__ import annotations

import abc
import enum
import json
import math
from typing import IO, Any, Protocol, runtime_checkable

jsondict = dict
"""Type alias for a JSON-izeable dictionary."""


@runtime_checkable
class Jsonizable(Protocol):
    """Protocol to indicate that a certain class provides the `__json__` method."""

    @abc.abstractmethod
    def __json__(self) -> jsondict:
        raise NotImplementedError


class JsonizeEncoder(json.JSONEncoder):
    """The JsonizeEncoder allows to transform instances of any class to JSON.

    Sets are exported as sorted lists of their string representations, such that the output does not depend on hash
    randomization. Enums are exported by value.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, enum.Enum):
            return obj.value
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        elif isinstance(obj, Jsonizable):
            return obj.__json__()
        return json.JSONEncoder.default(self, obj)


def _finite(value: Any) -> Any:
    if isinstance(value, float) and math.isinf(value):
        return None
    return value


def to_json(obj: Any, *args, **kwargs) -> str | None:
    """Utility to transform any object to a JSON string, while making use of the `JsonizeEncoder`.

    All arguments other than the object itself are passed to the default Python `json.dumps` function. Infinite floats at
    the top level (e.g. an unbounded space budget) are exported as *null*.
    """
    if obj is None:
        return None
    kwargs.pop("cls", None)
    return json.dumps(_finite(obj), *args, cls=JsonizeEncoder, **kwargs)


def to_json_dump(obj: Any, file: IO, *args, **kwargs) -> None:
    """Utility to transform any object to JSON and write it to a file, while making use of the `JsonizeEncoder`.

    All arguments other than the object itself are passed to the default Python `json.dump` function.
    """
    kwargs.pop("cls", None)
    json.dump(_finite(obj), file, *args, cls=JsonizeEncoder, **kwargs)
