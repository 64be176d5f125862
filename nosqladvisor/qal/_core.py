from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, Literal, Optional, overload

from ..model import Entity, Field, ForeignKeyField, IDField, Model
from ..util import jsondict

Operator = Literal["=", ">", ">=", "<", "<="]
"""The comparison operators that can be used in conditions."""

RangeOperators: frozenset[str] = frozenset({">", ">=", "<", "<="})
"""The operators that restrict a field to a range of values rather than a single value."""


@dataclasses.dataclass(frozen=True)
class Condition:
    """A condition restricts the values of a single field.

    Conditions either compare a field for equality (``=``), or restrict it to a range of values (one of the inequality
    operators). The actual comparison value is optional, since the advisor only reasons about the structure of statements.
    The value does not take part in equality comparisons.

    Attributes
    ----------
    field : Field
        The restricted field
    operator : Operator
        The comparison operator
    value : Any, optional
        The comparison value, if it is known
    """
    field: Field
    operator: Operator = "="
    value: Any = dataclasses.field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.operator != "=" and self.operator not in RangeOperators:
            raise ValueError(f"Unknown operator: {self.operator}")

    @property
    def is_range(self) -> bool:
        """Checks, whether this condition restricts its field to a range of values."""
        return self.operator in RangeOperators

    def __json__(self) -> jsondict:
        return {"field": str(self.field), "operator": self.operator, "value": self.value}

    def __str__(self) -> str:
        value = "?" if self.value is None else repr(self.value)
        return f"{self.field} {self.operator} {value}"


class KeyPath(Sequence[IDField]):
    """A key path describes a route through the model graph.

    The path starts with the ID field of its first entity. Each following key is a foreign key that leads from the entity of
    the previous key to the next entity. For example, the path *[users.id, users.region]* starts at the *users* entity and
    ends at the *regions* entity.

    Key paths are undirected with respect to equality: a path and its reverse (which follows the reverse foreign keys in
    the opposite direction) are considered equal. Use `keys` if the direction matters.

    Parameters
    ----------
    keys : Iterable[IDField]
        The keys that form the path. The first key must be a primary key, all other keys must be foreign keys.

    Raises
    ------
    ValueError
        If the path is empty, the keys do not form a connected route through the model or the route visits an entity twice.
    """

    @staticmethod
    def build(start: Entity, *key_names: str) -> KeyPath:
        """Constructs a key path starting at a specific entity and following the foreign keys of the given names.

        Parameters
        ----------
        start : Entity
            The entity where the path starts
        *key_names : str
            The names of the foreign keys to follow. Each key is looked up on the entity that the previous key leads to.

        Returns
        -------
        KeyPath
            The path
        """
        keys: list[IDField] = [start.id_field]
        current = start
        for name in key_names:
            key = current[name]
            if not isinstance(key, ForeignKeyField):
                raise ValueError(f"Field {key} is not a foreign key")
            keys.append(key)
            current = key.entity
        return KeyPath(keys)

    @staticmethod
    def parse(model: Model, path: str) -> KeyPath:
        """Constructs a key path from a dotted description such as ``"regions.users"``.

        The first component names the starting entity, all following components name foreign keys.
        """
        entity_name, *key_names = path.split(".")
        return KeyPath.build(model[entity_name], *key_names)

    def __init__(self, keys: Iterable[IDField]) -> None:
        self._keys: tuple[IDField, ...] = tuple(keys)
        if not self._keys:
            raise ValueError("Key path must not be empty")
        first, *rest = self._keys
        if isinstance(first, ForeignKeyField) or not first.primary_key:
            raise ValueError(f"Key path must start with a primary key, not {first}")

        entities = [first.parent]
        for key in rest:
            if not isinstance(key, ForeignKeyField):
                raise ValueError(f"Key {key} in the middle of a path must be a foreign key")
            if key.parent != entities[-1]:
                raise ValueError(f"Key {key} does not continue the path at entity {entities[-1]}")
            if key.entity in entities:
                raise ValueError(f"Key path visits entity {key.entity} twice")
            entities.append(key.entity)
        self._entities: tuple[Entity, ...] = tuple(entities)

        forward = tuple(str(key) for key in self._keys)
        backward = tuple(str(key) for key in self._reversed_keys())
        self._canonical = min(forward, backward)
        self._hash_val = hash(self._canonical)

    @property
    def keys(self) -> tuple[IDField, ...]:
        """Get the keys of the path, in path direction."""
        return self._keys

    @property
    def entities(self) -> tuple[Entity, ...]:
        """Get the entities along the path, in path direction."""
        return self._entities

    @property
    def first(self) -> Entity:
        """Get the entity where the path starts."""
        return self._entities[0]

    @property
    def last(self) -> Entity:
        """Get the entity where the path ends."""
        return self._entities[-1]

    def reverse(self) -> KeyPath:
        """Provides the same path, but traversed in the opposite direction."""
        return KeyPath(self._reversed_keys())

    def index_of(self, entity: Entity) -> int:
        """Determines the position of an entity on the path.

        Raises
        ------
        ValueError
            If the entity is not on the path
        """
        return self._entities.index(entity)

    def subpath(self, start: int, end: Optional[int] = None) -> KeyPath:
        """Provides the part of the path between two entity positions.

        Parameters
        ----------
        start : int
            The position of the first entity of the sub-path
        end : Optional[int], optional
            The position after the last entity of the sub-path (exclusive). Defaults to the end of the path.

        Returns
        -------
        KeyPath
            The sub-path. It runs in the same direction as this path.
        """
        end = len(self._entities) if end is None else end
        if not 0 <= start < end <= len(self._entities):
            raise IndexError(f"Invalid sub-path [{start}:{end}] of a path with {len(self._entities)} entities")
        return KeyPath([self._entities[start].id_field, *self._keys[start + 1:end]])

    def subpaths(self) -> list[KeyPath]:
        """Provides all connected sub-paths, ordered by their start position and then by their length."""
        return [self.subpath(start, end)
                for start in range(len(self._entities))
                for end in range(start + 1, len(self._entities) + 1)]

    def split(self, entity: Entity) -> tuple[KeyPath, KeyPath]:
        """Splits the path at one of its entities.

        Returns
        -------
        tuple[KeyPath, KeyPath]
            Both halves of the path. Each half starts at the split entity and leads away from it. If the entity is at an end of
            the path, the corresponding half consists of only that entity.
        """
        position = self.index_of(entity)
        return self.subpath(0, position + 1).reverse(), self.subpath(position)

    def splice(self, other: KeyPath) -> KeyPath:
        """Appends another path that starts where this path ends.

        Raises
        ------
        ValueError
            If the other path does not start at the last entity of this path
        """
        if other.first != self.last:
            raise ValueError(f"Cannot splice path starting at {other.first} onto path ending at {self.last}")
        return KeyPath([*self._keys, *other.keys[1:]])

    def find_field_parent(self, field: Field) -> KeyPath:
        """Provides the prefix of the path that ends at the entity of a specific field.

        Raises
        ------
        ValueError
            If the field's entity is not on the path
        """
        return self.subpath(0, self.index_of(field.parent) + 1)

    def is_reversed(self, other: KeyPath) -> bool:
        """Checks, whether the other path covers the same route in the opposite direction."""
        return self == other and self._keys != other.keys and len(self._keys) > 1

    def _reversed_keys(self) -> list[IDField]:
        reversed_keys: list[IDField] = [self._entities[-1].id_field]
        for key in reversed(self._keys[1:]):
            assert isinstance(key, ForeignKeyField)
            reversed_keys.append(key.reverse)
        return reversed_keys

    @overload
    def __getitem__(self, index: int) -> IDField: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[IDField]: ...

    def __getitem__(self, index):
        return self._keys[index]

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[IDField]:
        return iter(self._keys)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Entity):
            return item in self._entities
        return item in self._keys

    def __json__(self) -> list[str]:
        return [str(key) for key in self._keys]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, KeyPath):
            return NotImplemented
        return self._canonical < other._canonical

    def __hash__(self) -> int:
        return self._hash_val

    def __eq__(self, other: object) -> bool:
        return isinstance(other, KeyPath) and self._canonical == other._canonical

    def __repr__(self) -> str:
        return f"KeyPath({[str(key) for key in self._keys]})"

    def __str__(self) -> str:
        return ".".join([self._entities[0].name] + [key.name for key in self._keys[1:]])
