from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Literal, Optional

import networkx as nx

from .. import util
from ..util import jsondict

Relationship = Literal["one", "many"]
"""Describes how many target entities a foreign key can point to."""


class InvalidEntityError(ValueError):
    """Indicates that an entity is malformed, e.g. because it does not have an ID field or contains duplicate fields."""

    def __init__(self, msg: str, entity: Optional[Entity] = None) -> None:
        super().__init__(msg)
        self.entity = entity


class EntityNotFoundError(KeyError):
    """Indicates that a model does not contain an entity of the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No entity named '{name}'")
        self.name = name


class FieldNotFoundError(KeyError):
    """Indicates that an entity does not contain a field of the requested name."""

    def __init__(self, entity: str, name: str) -> None:
        super().__init__(f"Entity '{entity}' has no field '{name}'")
        self.entity = entity
        self.name = name


class Field:
    """A field models a single attribute of an entity.

    Each field belongs to exactly one entity. This binding is established when the field is added to the entity (see
    `Entity.add_field`) and cannot be changed afterwards. Fields are identified by the name of their entity along with their
    own name, i.e. two fields are equal if they are bound to entities of the same name and have the same name themselves.

    The different field types only differ in their default size and their cardinality estimates.

    Parameters
    ----------
    name : str
        The name of the field. Cannot be empty.
    size : Optional[int], optional
        The number of bytes required to store a single value of the field. Defaults to the type-specific default size.
    count : Optional[int], optional
        The (estimated) number of distinct values of the field. If omitted, the type-specific default is used. For most types,
        this is the number of rows of the owning entity, i.e. the field is assumed to be unique.

    Raises
    ------
    ValueError
        If the name is empty or size or count are negative.
    """

    default_size: int = 10
    """The size of a field value in bytes, unless specified otherwise."""

    def __init__(self, name: str, *, size: Optional[int] = None, count: Optional[int] = None) -> None:
        if not name:
            raise ValueError("Field name is required")
        if size is not None and size < 0:
            raise ValueError(f"Field size must not be negative: {size}")
        if count is not None and count <= 0:
            raise ValueError(f"Field count must be positive: {count}")
        self._name = name
        self._size = self.default_size if size is None else size
        self._count = count
        self._parent: Optional[Entity] = None

    @property
    def name(self) -> str:
        """Get the name of the field.

        Returns
        -------
        str
            The name, never empty
        """
        return self._name

    @property
    def parent(self) -> Entity:
        """Get the entity that owns this field.

        Returns
        -------
        Entity
            The entity

        Raises
        ------
        StateError
            If the field has not been added to an entity yet
        """
        if self._parent is None:
            raise util.StateError(f"Field '{self._name}' is not bound to an entity")
        return self._parent

    @property
    def size(self) -> int:
        """Get the number of bytes required to store a value of this field."""
        return self._size

    @property
    def cardinality(self) -> int:
        """Get the estimated number of distinct values of this field.

        Returns
        -------
        int
            The explicit count if one was given, otherwise the row count of the owning entity.
        """
        return self._count if self._count is not None else self.parent.count

    @property
    def id(self) -> str:
        """Get a normalized identifier of this field that can be used in generated names. Has the form *entity_field*."""
        return f"{self.parent.name}_{self._name}"

    @property
    def primary_key(self) -> bool:
        """Checks, whether this field is the primary key of its entity."""
        return False

    def bind_to(self, entity: Entity) -> None:
        """Attaches the field to its owning entity. This should only be called by `Entity.add_field`.

        Raises
        ------
        StateError
            If the field is already bound to a different entity
        """
        if self._parent is not None and self._parent is not entity:
            raise util.StateError(f"Field '{self._name}' is already bound to entity '{self._parent.name}'")
        self._parent = entity

    def _parent_name(self) -> str:
        return self._parent.name if self._parent is not None else ""

    def __json__(self) -> jsondict:
        return {"name": self._name, "entity": self._parent_name(), "type": type(self).__name__, "size": self._size,
                "cardinality": self.cardinality if self._parent is not None else self._count}

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return NotImplemented
        return (self._parent_name(), self._name) < (other._parent_name(), other._name)

    def __hash__(self) -> int:
        return hash((self._parent_name(), self._name))

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, Field)
                and self._name == other._name
                and self._parent_name() == other._parent_name())

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self._parent_name()}.{self._name}')"

    def __str__(self) -> str:
        return f"{self._parent_name()}.{self._name}"


class IDField(Field):
    """The primary key of an entity. ID fields are immutable and unique, hence their cardinality is the entity's row count."""

    default_size = 16

    def __init__(self, name: str, *, size: Optional[int] = None) -> None:
        super().__init__(name, size=size)

    @property
    def cardinality(self) -> int:
        return self.parent.count

    @property
    def primary_key(self) -> bool:
        return True


class ForeignKeyField(IDField):
    """A reference from one entity to another entity.

    Foreign keys are always created in pairs by `Model.add_foreign_key`: each key knows its `reverse` key on the target
    entity. The `relationship` describes whether a row of the owning entity refers to a single row of the target entity
    (*one*) or to many of them (*many*).

    Parameters
    ----------
    name : str
        The name of the key
    entity : Entity
        The entity the key points to
    relationship : Relationship, optional
        The multiplicity of the reference, *one* by default
    size : Optional[int], optional
        The size of a key value, defaults to the ID size
    """

    def __init__(self, name: str, entity: Entity, *, relationship: Relationship = "one",
                 size: Optional[int] = None) -> None:
        if relationship not in ("one", "many"):
            raise ValueError(f"Unknown relationship type: {relationship}")
        super().__init__(name, size=size)
        self._entity = entity
        self._relationship = relationship
        self._reverse: Optional[ForeignKeyField] = None

    @property
    def entity(self) -> Entity:
        """Get the entity that this key points to."""
        return self._entity

    @property
    def relationship(self) -> Relationship:
        """Get the multiplicity of this reference."""
        return self._relationship

    @property
    def reverse(self) -> ForeignKeyField:
        """Get the key on the target entity that points back to the owner of this key.

        Raises
        ------
        StateError
            If the key has not been connected to its reverse key
        """
        if self._reverse is None:
            raise util.StateError(f"Foreign key {self} has no reverse key")
        return self._reverse

    @property
    def cardinality(self) -> int:
        return self._entity.count

    @property
    def primary_key(self) -> bool:
        return False

    def connect_reverse(self, reverse: ForeignKeyField) -> None:
        """Links this key to its reverse key. This should only be called by `Model.add_foreign_key`."""
        self._reverse = reverse

    def __json__(self) -> jsondict:
        description = super().__json__()
        description["target"] = self._entity.name
        description["relationship"] = self._relationship
        return description


class StringField(Field):
    """A textual field."""
    default_size = 10


class IntegerField(Field):
    """An integral number."""
    default_size = 8


class FloatField(Field):
    """A floating point number."""
    default_size = 8


class DateField(Field):
    """A point in time."""
    default_size = 8


class BooleanField(Field):
    """A truth value. Unless specified otherwise, such a field has two distinct values."""
    default_size = 1

    def __init__(self, name: str, *, size: Optional[int] = None, count: Optional[int] = None) -> None:
        super().__init__(name, size=size, count=2 if count is None else count)


class Entity:
    """An entity is a named collection of fields, along with an estimate of its number of rows.

    Fields are stored in declaration order. Each entity requires exactly one ID field, which must be added before the entity
    can become part of a `Model`. Foreign keys are added through the model, since each key also requires a reverse key on
    the target entity.

    Entities are identified by their name. Since they are created incrementally, they are mutable while the model is being
    set up. Afterwards, they should be treated as immutable data objects.

    Parameters
    ----------
    name : str
        The name of the entity. Cannot be empty.
    count : int, optional
        The estimated number of rows, defaults to 1.
    fields : Iterable[Field], optional
        Initial fields of the entity, added in the given order.
    """

    def __init__(self, name: str, count: int = 1, fields: Iterable[Field] = ()) -> None:
        if not name:
            raise ValueError("Entity name is required")
        if count <= 0:
            raise ValueError(f"Entity count must be positive: {count}")
        self._name = name
        self._count = count
        self._fields: dict[str, Field] = {}
        self._id_field: Optional[IDField] = None
        for field in fields:
            self.add_field(field)

    @property
    def name(self) -> str:
        """Get the name of the entity."""
        return self._name

    @property
    def count(self) -> int:
        """Get the estimated number of rows of the entity."""
        return self._count

    @property
    def fields(self) -> dict[str, Field]:
        """Get all fields of the entity in declaration order, including the ID and foreign keys."""
        return dict(self._fields)

    @property
    def foreign_keys(self) -> dict[str, ForeignKeyField]:
        """Get all foreign keys of the entity in declaration order."""
        return {name: field for name, field in self._fields.items() if isinstance(field, ForeignKeyField)}

    @property
    def id_field(self) -> IDField:
        """Get the primary key of the entity.

        Raises
        ------
        InvalidEntityError
            If no ID field has been added yet
        """
        if self._id_field is None:
            raise InvalidEntityError(f"Entity '{self._name}' has no ID field", self)
        return self._id_field

    def add_field(self, field: Field) -> Field:
        """Attaches a new field to the entity.

        Parameters
        ----------
        field : Field
            The field to add. It is bound to this entity.

        Returns
        -------
        Field
            The same field, for convenience

        Raises
        ------
        InvalidEntityError
            If a field of the same name already exists, or if a second primary key should be added
        """
        if field.name in self._fields:
            raise InvalidEntityError(f"Entity '{self._name}' already has a field '{field.name}'", self)
        if field.primary_key and self._id_field is not None:
            raise InvalidEntityError(f"Entity '{self._name}' already has ID field '{self._id_field.name}'", self)
        field.bind_to(self)
        self._fields[field.name] = field
        if field.primary_key:
            self._id_field = field
        return field

    def __getitem__(self, name: str) -> Field:
        try:
            return self._fields[name]
        except KeyError:
            raise FieldNotFoundError(self._name, name) from None

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return item in self._fields
        return isinstance(item, Field) and self._fields.get(item.name) == item

    def __iter__(self):
        return iter(self._fields.values())

    def __json__(self) -> jsondict:
        return {"name": self._name, "count": self._count, "fields": list(self._fields.values())}

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self._name < other._name

    def __hash__(self) -> int:
        return hash(self._name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Entity) and self._name == other._name

    def __repr__(self) -> str:
        return f"Entity('{self._name}', count={self._count})"

    def __str__(self) -> str:
        return self._name


class Model:
    """The model is the entity-relationship schema that all statements and indexes refer to.

    A model consists of entities and the foreign keys that connect them. Foreign keys form a directed graph, the *model
    graph*. This graph may contain cycles (e.g. self-references or a pair of mutually referencing keys). Algorithms that
    traverse the model therefore always bound their path length explicitly.

    Parameters
    ----------
    entities : Iterable[Entity], optional
        The initial entities. Each entity is validated as in `add_entity`.
    """

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._entities: dict[str, Entity] = {}
        for entity in entities:
            self.add_entity(entity)

    @property
    def entities(self) -> dict[str, Entity]:
        """Get all entities, in the order in which they were added."""
        return dict(self._entities)

    def add_entity(self, entity: Entity) -> Entity:
        """Registers a new entity.

        Raises
        ------
        InvalidEntityError
            If the entity has no ID field or if an entity of the same name already exists
        """
        if entity.name in self._entities:
            raise InvalidEntityError(f"Duplicate entity '{entity.name}'", entity)
        entity.id_field  # raises for entities without a primary key
        self._entities[entity.name] = entity
        return entity

    def add_foreign_key(self, entity: str | Entity, name: str, target: str | Entity, reverse_name: str, *,
                        relationship: Relationship = "one") -> ForeignKeyField:
        """Creates a foreign key along with its reverse key.

        Parameters
        ----------
        entity : str | Entity
            The entity that owns the new key
        name : str
            The name of the new key
        target : str | Entity
            The entity that the key points to
        reverse_name : str
            The name of the reverse key that will be added to the target entity
        relationship : Relationship, optional
            Whether each row of `entity` refers to *one* or *many* rows of the target. The reverse key receives the
            opposite multiplicity.

        Returns
        -------
        ForeignKeyField
            The key on `entity`. Its reverse key is available via `ForeignKeyField.reverse`.
        """
        source_entity = self[entity] if isinstance(entity, str) else entity
        target_entity = self[target] if isinstance(target, str) else target
        reverse_relationship: Relationship = "many" if relationship == "one" else "one"

        key = ForeignKeyField(name, target_entity, relationship=relationship)
        reverse = ForeignKeyField(reverse_name, source_entity, relationship=reverse_relationship)
        source_entity.add_field(key)
        target_entity.add_field(reverse)
        key.connect_reverse(reverse)
        reverse.connect_reverse(key)
        return key

    def find_field(self, path: str | Sequence[str]) -> Field:
        """Resolves a field reference of the form *entity.field*.

        Raises
        ------
        EntityNotFoundError
            If the entity does not exist
        FieldNotFoundError
            If the entity does not have such a field
        """
        entity_name, field_name = path.split(".", 1) if isinstance(path, str) else path
        return self[entity_name][field_name]

    def graph(self) -> nx.MultiDiGraph:
        """Provides the model graph.

        Returns
        -------
        nx.MultiDiGraph
            A graph with one node per entity and one edge per foreign key. Edges are keyed by the name of the foreign key and
            carry the key itself in the *foreign_key* attribute.
        """
        graph = nx.MultiDiGraph()
        graph.add_nodes_from(self._entities.values())
        for entity in self._entities.values():
            for key in entity.foreign_keys.values():
                graph.add_edge(entity, key.entity, key=key.name, foreign_key=key)
        return graph

    def find_paths(self, start: str | Entity, end: str | Entity, *, max_hops: int) -> list[tuple[ForeignKeyField, ...]]:
        """Determines all acyclic routes of foreign keys that lead from one entity to another.

        Parameters
        ----------
        start : str | Entity
            The entity where all routes start
        end : str | Entity
            The entity where all routes end. If this is the start entity, only the empty route is returned.
        max_hops : int
            The maximum number of keys per route

        Returns
        -------
        list[tuple[ForeignKeyField, ...]]
            The routes, shorter routes first
        """
        start_entity = self[start] if isinstance(start, str) else start
        end_entity = self[end] if isinstance(end, str) else end
        if start_entity == end_entity:
            return [()]

        paths: list[tuple[ForeignKeyField, ...]] = []
        for walk in util.networkx.nx_bounded_paths(self.graph(), start_entity, max_hops=max_hops):
            if walk[-1][1] == end_entity:
                paths.append(tuple(edge["foreign_key"] for _, _, edge in walk))
        return paths

    def __getitem__(self, name: str) -> Entity:
        try:
            return self._entities[name]
        except KeyError:
            raise EntityNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self):
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)

    def __json__(self) -> jsondict:
        return {"entities": list(self._entities.values())}

    def __repr__(self) -> str:
        return f"Model({list(self._entities)})"

    def __str__(self) -> str:
        return f"Model({', '.join(self._entities)})"
