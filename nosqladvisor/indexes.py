"""Models the materialized indexes that the advisor selects.

An index stores denormalized entries along a path through the model. Each entry is addressed by its *hash fields* (an
unordered set of fields that is only usable for equality lookups), sorted by its *order fields* (usable for range lookups
and ordering) and carries additional *extra fields* as payload. In wide-column stores, the hash fields correspond to the
partition key and the order fields to the clustering key of a column family.

Indexes are immutable data objects. Two indexes are equal if they contain the same fields in the same roles and span the same
path, independent of the direction in which the path is described.
"""
from __future__ import annotations

import zlib
from collections.abc import Iterable
from typing import TYPE_CHECKING

import numpy as np

from .model import Entity, Field, ForeignKeyField
from .qal import KeyPath
from .util import jsondict

if TYPE_CHECKING:
    from .qal import Query


class InvalidIndexError(ValueError):
    """Indicates that an index violates one of its structural invariants.

    Parameters
    ----------
    msg : str
        Description of the violated invariant
    """

    def __init__(self, msg: str) -> None:
        super().__init__(msg)


class Index:
    """An index is a denormalized view of a path through the model.

    Besides the basic invariants (non-empty and pairwise disjoint field groups, all fields located on the path), each index
    has to satisfy the following properties:

    - all hash fields belong to the same entity, the *hash entity*. The hash entity has to be located at an end of the path.
      Internally, the path is always stored such that it starts at the hash entity.
    - the ID of each entity on the path is part of the key (hash or order fields). This guarantees that each combination of
      rows along the path is stored in a distinct entry.

    Parameters
    ----------
    hash_fields : Iterable[Field]
        The fields that form the partition key
    order_fields : Iterable[Field]
        The fields that sort the entries within a partition, in sort order
    extra : Iterable[Field]
        Additional fields that are stored in each entry
    path : KeyPath
        The route through the model that the index spans

    Raises
    ------
    InvalidIndexError
        If any of the invariants are violated
    """

    @staticmethod
    def simple(entity: Entity) -> Index:
        """Provides the index that stores each row of an entity under its ID.

        Each entity needs such an index in order to be fetched by its ID. Foreign keys that refer to many rows are not
        stored, since they do not have a single value per row.
        """
        extra = [field for field in entity if field != entity.id_field
                 and not (isinstance(field, ForeignKeyField) and field.relationship == "many")]
        return Index([entity.id_field], [], extra, KeyPath([entity.id_field]))

    def __init__(self, hash_fields: Iterable[Field], order_fields: Iterable[Field], extra: Iterable[Field],
                 path: KeyPath) -> None:
        self._hash_fields = frozenset(hash_fields)
        self._order_fields = tuple(order_fields)
        self._extra = frozenset(extra)
        self._validate_fields(path)

        self._hash_entity = next(iter(self._hash_fields)).parent
        self._path = path if path.first == self._hash_entity else path.reverse()
        self._validate_path()

        self._all_fields = self._hash_fields | frozenset(self._order_fields) | self._extra
        self._identity = (tuple(sorted(field.id for field in self._hash_fields)),
                          tuple(field.id for field in self._order_fields),
                          tuple(sorted(field.id for field in self._extra)),
                          self._path)
        self._hash_val = hash(self._identity)
        self._key = "i" + str(zlib.crc32(self._description().encode("utf-8")))

    def _validate_fields(self, path: KeyPath) -> None:
        if not self._hash_fields:
            raise InvalidIndexError("Hash fields cannot be empty")
        if len({field.parent for field in self._hash_fields}) > 1:
            raise InvalidIndexError("Hash fields can only involve one entity")
        if len(set(self._order_fields)) != len(self._order_fields):
            raise InvalidIndexError("Order fields must not contain duplicates")
        order = frozenset(self._order_fields)
        if self._hash_fields & order or self._hash_fields & self._extra or order & self._extra:
            raise InvalidIndexError("Hash, order and extra fields must be disjoint")
        for field in self._hash_fields | order | self._extra:
            if field.parent not in path.entities:
                raise InvalidIndexError(f"Field {field} is not on path {path}")

    def _validate_path(self) -> None:
        if self._path.first != self._hash_entity:
            raise InvalidIndexError(f"Hash entity {self._hash_entity} is not an end of path {self._path}")
        key_fields = self._hash_fields | frozenset(self._order_fields)
        missing_ids = [entity.id_field for entity in self._path.entities if entity.id_field not in key_fields]
        if missing_ids:
            raise InvalidIndexError(f"Missing path entity keys: {', '.join(str(field) for field in missing_ids)}")

    @property
    def hash_fields(self) -> frozenset[Field]:
        """Get the fields that form the partition key."""
        return self._hash_fields

    @property
    def order_fields(self) -> tuple[Field, ...]:
        """Get the fields that sort the entries within a partition."""
        return self._order_fields

    @property
    def extra(self) -> frozenset[Field]:
        """Get the payload fields of the index."""
        return self._extra

    @property
    def path(self) -> KeyPath:
        """Get the path of the index. It always starts at the hash entity."""
        return self._path

    @property
    def hash_entity(self) -> Entity:
        """Get the entity that provides the hash fields."""
        return self._hash_entity

    @property
    def all_fields(self) -> frozenset[Field]:
        """Get all fields that are stored in the index."""
        return self._all_fields

    @property
    def key_fields(self) -> frozenset[Field]:
        """Get the fields that address an entry, i.e. the hash fields and the order fields."""
        return self._hash_fields | frozenset(self._order_fields)

    @property
    def key(self) -> str:
        """Get a short, stable identifier of the index, e.g. to name the index in a data store."""
        return self._key

    @property
    def identity(self) -> bool:
        """Checks, whether this index only maps the ID of a single entity to other fields of that entity."""
        return (len(self._path.entities) == 1
                and self._hash_fields == {self._hash_entity.id_field}
                and not self._order_fields)

    @property
    def hash_count(self) -> float:
        """Get the estimated number of partitions, i.e. the number of distinct values of the hash fields."""
        return float(np.prod([field.cardinality for field in sorted(self._hash_fields)], dtype=float))

    @property
    def entries(self) -> int:
        """Get the estimated number of entries. This is the number of rows of the largest entity on the path."""
        return max(entity.count for entity in self._path.entities)

    @property
    def per_hash_count(self) -> float:
        """Get the estimated number of entries per partition."""
        return self.entries / self.hash_count

    @property
    def entry_size(self) -> int:
        """Get the number of bytes of a single entry."""
        return sum(field.size for field in self._all_fields)

    @property
    def size(self) -> int:
        """Get the estimated total number of bytes of the index."""
        return self.entries * self.entry_size

    def can_merge(self, other: Index) -> bool:
        """Checks, whether two indexes can be combined into a single index that serves the purposes of both.

        This is the case if both indexes span the same path and use the same hash fields, while the order fields of one
        index are a prefix of the order fields of the other index.
        """
        if self == other or self._path != other.path or self._hash_fields != other.hash_fields:
            return False
        shorter, longer = sorted((self._order_fields, other.order_fields), key=len)
        return longer[:len(shorter)] == shorter

    def merge(self, other: Index) -> Index:
        """Combines two indexes into a single, wider index.

        The merged index uses the longer sequence of order fields and stores the union of both extra fields (without the
        fields that became part of the key).

        Raises
        ------
        InvalidIndexError
            If the indexes cannot be merged, see `can_merge`
        """
        if not self.can_merge(other):
            raise InvalidIndexError(f"Indexes {self.key} and {other.key} cannot be merged")
        order_fields = max((self._order_fields, other.order_fields), key=len)
        extra = (self._extra | other.extra) - frozenset(order_fields)
        return Index(self._hash_fields, order_fields, extra, self._path)

    def _description(self) -> str:
        hash_str = ",".join(sorted(field.id for field in self._hash_fields))
        order_str = ",".join(field.id for field in self._order_fields)
        extra_str = ",".join(sorted(field.id for field in self._extra))
        return f"[{hash_str}][{order_str}][{extra_str}] {'.'.join(self._path.__json__())}"

    def __json__(self) -> jsondict:
        return {"key": self._key,
                "hash_fields": [str(field) for field in sorted(self._hash_fields)],
                "order_fields": [str(field) for field in self._order_fields],
                "extra": [str(field) for field in sorted(self._extra)],
                "path": self._path,
                "entry_size": self.entry_size,
                "size": self.size}

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Index):
            return NotImplemented
        return self._description() < other._description()

    def __hash__(self) -> int:
        return self._hash_val

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Index) and self._identity == other._identity

    def __repr__(self) -> str:
        return f"Index({self._key}: {self})"

    def __str__(self) -> str:
        hash_str = ", ".join(str(field) for field in sorted(self._hash_fields))
        order_str = ", ".join(str(field) for field in self._order_fields)
        extra_str = ", ".join(str(field) for field in sorted(self._extra))
        return f"[{hash_str}][{order_str}][{extra_str}] {self._path}"


def materialize_view(query: Query) -> Index:
    """Constructs the index that answers a query with a single lookup.

    The hash fields are the equality predicates on the first entity of the query's join order (or that entity's ID if there
    are none). Equality predicates on other entities, the range predicates, the sort fields and the IDs of all entities along
    the path form the order fields, in that sequence. All remaining fields that the query references become extra fields.

    Parameters
    ----------
    query : Query
        The query

    Returns
    -------
    Index
        The index
    """
    join_order = query.join_order
    hash_entity = join_order[0]
    hash_fields = [field for field in query.eq_fields if field.parent == hash_entity] or [hash_entity.id_field]

    order_candidates = ([field for field in query.eq_fields if field not in hash_fields]
                        + list(query.range_fields)
                        + list(query.order)
                        + [entity.id_field for entity in join_order])
    order_fields = [field for field in dict.fromkeys(order_candidates) if field not in hash_fields]
    extra = query.all_fields - frozenset(hash_fields) - frozenset(order_fields)
    return Index(hash_fields, order_fields, extra, query.key_path)


def total_size(indexes: Iterable[Index]) -> int:
    """Computes the combined size of several indexes."""
    return sum(index.size for index in indexes)
