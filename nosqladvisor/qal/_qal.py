from __future__ import annotations

import abc
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional, TypeVar

from ._core import Condition, KeyPath
from ._graph import QueryGraph
from ..model import Entity, Field, ForeignKeyField
from ..util import jsondict

if TYPE_CHECKING:
    from ..indexes import Index


T = TypeVar("T")


class InvalidStatementError(ValueError):
    """Indicates that a statement is ill-formed.

    Typical reasons are fields that are not located on the statement's path, or missing equality predicates.

    Parameters
    ----------
    msg : str
        Description of the problem
    label : str, optional
        The label of the affected statement, if it has one
    """

    def __init__(self, msg: str, label: str = "") -> None:
        super().__init__(f"{msg} [{label}]" if label else msg)
        self.label = label


def _unique(elems: Iterable[T]) -> tuple[T, ...]:
    return tuple(dict.fromkeys(elems))


class Statement(abc.ABC):
    """Common interface of all statements of a workload.

    Each statement operates on a base entity and follows a `KeyPath` that starts at this entity. All fields that a statement
    references must be located on entities of that path. The path determines the statement's `QueryGraph`.

    Statements are immutable data objects. Equality is based on their content, the label is only used for display purposes
    and to identify statements in error messages.

    Parameters
    ----------
    entity : Entity
        The base entity
    key_path : KeyPath
        The route through the model that the statement follows. Must start at the base entity.
    conditions : Iterable[Condition], optional
        The predicates of the statement
    label : str, optional
        A human-readable name of the statement

    Raises
    ------
    InvalidStatementError
        If the path does not start at the base entity or a condition references a field outside of the path
    """

    def __init__(self, entity: Entity, key_path: KeyPath, conditions: Iterable[Condition] = (), *,
                 label: str = "") -> None:
        if key_path.first != entity:
            raise InvalidStatementError(f"Path {key_path} does not start at entity {entity}", label)
        self._entity = entity
        self._key_path = key_path
        self._conditions = _unique(conditions)
        self._label = label
        self._graph = QueryGraph(key_path)
        self._check_on_path(condition.field for condition in self._conditions)

    @property
    def entity(self) -> Entity:
        """Get the base entity of the statement."""
        return self._entity

    @property
    def key_path(self) -> KeyPath:
        """Get the route through the model that the statement follows."""
        return self._key_path

    @property
    def graph(self) -> QueryGraph:
        """Get the join structure of the statement."""
        return self._graph

    @property
    def conditions(self) -> tuple[Condition, ...]:
        """Get all predicates of the statement, in declaration order."""
        return self._conditions

    @property
    def label(self) -> str:
        return self._label

    @property
    def eq_fields(self) -> tuple[Field, ...]:
        """Get all fields that are compared for equality, in declaration order."""
        return _unique(condition.field for condition in self._conditions if not condition.is_range)

    @property
    def range_fields(self) -> tuple[Field, ...]:
        """Get all fields that are restricted to a range of values, in declaration order."""
        return _unique(condition.field for condition in self._conditions
                       if condition.is_range and condition.field not in self.eq_fields)

    @property
    @abc.abstractmethod
    def all_fields(self) -> frozenset[Field]:
        """Get all fields that the statement references."""
        raise NotImplementedError

    def is_query(self) -> bool:
        """Checks, whether the statement only reads data."""
        return False

    def describe(self) -> str:
        """Provides a short description of the statement, preferably its label."""
        return self._label or str(self)

    def _check_on_path(self, fields: Iterable[Field]) -> None:
        for field in fields:
            if field.parent not in self._key_path:
                raise InvalidStatementError(f"Field {field} is not on path {self._key_path}", self._label)

    def _check_eq_on_path_end(self) -> None:
        try:
            self._graph.join_order(self.eq_fields)
        except ValueError as e:
            raise InvalidStatementError(str(e), self._label) from e

    def _where_clause(self) -> str:
        if not self._conditions:
            return ""
        return " WHERE " + " AND ".join(str(condition) for condition in self._conditions)

    @abc.abstractmethod
    def _identity(self) -> tuple:
        raise NotImplementedError

    @abc.abstractmethod
    def __json__(self) -> jsondict:
        raise NotImplementedError

    def __hash__(self) -> int:
        return hash(self._identity())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self._identity() == other._identity()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self})"


class Query(Statement):
    """A query retrieves fields of entities along a path.

    A query has the general form ``SELECT <fields> FROM <path> WHERE <conditions> ORDER BY <fields> LIMIT <n>``. At least one
    equality predicate has to be located on one of the two ends of the path, since this is where the lookup of the query
    starts (see `join_order`). Additional predicates may be located anywhere on the path.

    Parameters
    ----------
    select : Iterable[Field]
        The fields that should be retrieved. Must not be empty.
    key_path : KeyPath
        The path that the query follows. Its first entity is the base entity of the query.
    conditions : Iterable[Condition], optional
        The predicates
    order : Iterable[Field], optional
        Fields by which the result should be sorted
    limit : Optional[int], optional
        The maximum number of results
    label : str, optional
        A human-readable name of the query

    Raises
    ------
    InvalidStatementError
        If the query is malformed
    """

    def __init__(self, select: Iterable[Field], key_path: KeyPath, conditions: Iterable[Condition] = (), *,
                 order: Iterable[Field] = (), limit: Optional[int] = None, label: str = "") -> None:
        super().__init__(key_path.first, key_path, conditions, label=label)
        self._select = _unique(select)
        self._order = _unique(order)
        self._limit = limit
        if not self._select:
            raise InvalidStatementError("Query must select at least one field", label)
        if limit is not None and limit <= 0:
            raise InvalidStatementError(f"Limit must be positive: {limit}", label)
        self._check_on_path(self._select)
        self._check_on_path(self._order)
        self._check_eq_on_path_end()
        self._join_order = self._graph.join_order(self.eq_fields)

    @property
    def select(self) -> tuple[Field, ...]:
        """Get the fields that the query retrieves."""
        return self._select

    @property
    def order(self) -> tuple[Field, ...]:
        """Get the fields that the result is sorted by."""
        return self._order

    @property
    def limit(self) -> Optional[int]:
        return self._limit

    @property
    def all_fields(self) -> frozenset[Field]:
        return frozenset(self._select) | frozenset(self._order) | frozenset(c.field for c in self._conditions)

    @property
    def join_order(self) -> list[Entity]:
        """Get the order in which the entities of the query are visited during planning.

        The order starts at the end of the path that carries an equality predicate, preferring the last entity.
        """
        return list(self._join_order)

    def is_query(self) -> bool:
        return True

    def materialize_view(self) -> Index:
        """Provides the index that answers this query with a single lookup."""
        from ..indexes import materialize_view
        return materialize_view(self)

    def _identity(self) -> tuple:
        return ("query", self._select, self._key_path, frozenset(self._conditions), self._order, self._limit)

    def __json__(self) -> jsondict:
        return {"type": "query", "label": self._label, "select": [str(field) for field in self._select],
                "path": self._key_path, "conditions": self._conditions, "order": [str(field) for field in self._order],
                "limit": self._limit}

    def __str__(self) -> str:
        select = ", ".join(str(field) for field in self._select)
        text = f"SELECT {select} FROM {self._key_path}{self._where_clause()}"
        if self._order:
            text += " ORDER BY " + ", ".join(str(field) for field in self._order)
        if self._limit is not None:
            text += f" LIMIT {self._limit}"
        return text


class SupportQuery(Query):
    """A query that an update statement issues to fetch the values it needs to maintain a specific index.

    Support queries are generated by `UpdateStatement.support_queries` and should not be created directly.

    Parameters
    ----------
    select : Iterable[Field]
        The fields that have to be fetched
    key_path : KeyPath
        The path of the query
    conditions : Iterable[Condition]
        The predicates, derived from the update statement
    statement : UpdateStatement
        The update statement that requires the query
    index : Index
        The index that the statement maintains
    """

    def __init__(self, select: Iterable[Field], key_path: KeyPath, conditions: Iterable[Condition], *,
                 statement: UpdateStatement, index: Index) -> None:
        super().__init__(select, key_path, conditions, label=f"{statement.describe()} / {index.key}")
        self._statement = statement
        self._index = index

    @property
    def statement(self) -> UpdateStatement:
        return self._statement

    @property
    def index(self) -> Index:
        return self._index

    def _identity(self) -> tuple:
        return super()._identity() + (self._statement, self._index)


class UpdateStatement(Statement, abc.ABC):
    """Common interface of all statements that modify data: `Insert`, `Update` and `Delete`.

    In a denormalized store, each modification has to be applied to every index that contains the modified data. Which
    indexes are affected and how they are affected is determined by `modifies_index`, `requires_delete` and
    `requires_insert`. To write an index entry, the statement might need to fetch additional values (e.g. fields of related
    entities that are stored in the same entry). These are obtained through the `support_queries`.

    Parameters
    ----------
    entity : Entity
        The modified entity
    key_path : KeyPath
        The path that the predicates are located on. Must start at the modified entity.
    settings : Iterable[Field]
        The fields that receive new values
    conditions : Iterable[Condition], optional
        The predicates that select the modified rows
    label : str, optional
        A human-readable name of the statement
    """

    def __init__(self, entity: Entity, key_path: KeyPath, settings: Iterable[Field] = (),
                 conditions: Iterable[Condition] = (), *, label: str = "") -> None:
        super().__init__(entity, key_path, conditions, label=label)
        self._settings = _unique(settings)
        for field in self._settings:
            if field.parent != entity:
                raise InvalidStatementError(f"Field {field} cannot be set on entity {entity}", label)

    @property
    def settings(self) -> tuple[Field, ...]:
        """Get the fields that receive new values."""
        return self._settings

    @property
    def all_fields(self) -> frozenset[Field]:
        return frozenset(self._settings) | frozenset(c.field for c in self._conditions)

    @property
    def given_fields(self) -> frozenset[Field]:
        """Get all fields whose values are provided by the statement itself."""
        return frozenset(self._settings) | frozenset(self.eq_fields)

    @abc.abstractmethod
    def modifies_index(self, index: Index) -> bool:
        """Checks, whether executing the statement changes entries of the index."""
        raise NotImplementedError

    def requires_delete(self, index: Index) -> bool:
        """Checks, whether existing entries of the index have to be removed."""
        return False

    def requires_insert(self, index: Index) -> bool:
        """Checks, whether new entries have to be written to the index."""
        return False

    @abc.abstractmethod
    def support_queries(self, index: Index) -> list[SupportQuery]:
        """Provides the queries that fetch the data which is necessary to maintain the index.

        Parameters
        ----------
        index : Index
            An index that is modified by the statement

        Returns
        -------
        list[SupportQuery]
            The queries. Can be empty if the statement itself provides all necessary values.
        """
        raise NotImplementedError

    def _support_queries_for_halves(self, index: Index, needed: frozenset[Field]) -> list[SupportQuery]:
        queries: list[SupportQuery] = []
        for half in index.path.split(self._entity):
            if len(half.entities) == 1:
                continue
            select = [field for field in sorted(needed) if field.parent in half.entities[1:]]
            if not select:
                continue
            conditions = [Condition(self._entity.id_field, "=")]
            queries.append(SupportQuery(select, half, conditions, statement=self, index=index))
        return queries

    def _modified_fields(self, index: Index) -> frozenset[Field]:
        return frozenset(self._settings) & index.all_fields


class Insert(UpdateStatement):
    """Adds a new row to an entity.

    Parameters
    ----------
    entity : Entity
        The entity that receives the new row
    settings : Iterable[Field]
        The fields whose values are provided. The ID of the entity is always considered to be provided.
    connections : Iterable[ForeignKeyField], optional
        The foreign keys of the new row that are connected to existing rows of other entities
    label : str, optional
        A human-readable name of the statement
    """

    def __init__(self, entity: Entity, settings: Iterable[Field], connections: Iterable[ForeignKeyField] = (), *,
                 label: str = "") -> None:
        super().__init__(entity, KeyPath([entity.id_field]), settings, label=label)
        self._connections = _unique(connections)
        for key in self._connections:
            if key.parent != entity:
                raise InvalidStatementError(f"Key {key} does not belong to entity {entity}", label)

    @property
    def connections(self) -> tuple[ForeignKeyField, ...]:
        return self._connections

    @property
    def given_fields(self) -> frozenset[Field]:
        connected_ids = frozenset(key.entity.id_field for key in self._connections)
        return super().given_fields | {self._entity.id_field} | frozenset(self._connections) | connected_ids

    def modifies_index(self, index: Index) -> bool:
        if self._entity not in index.path.entities:
            return False
        if len(index.path.entities) == 1:
            return True
        return all(key in self._connections for key in self._outgoing_keys(index.path))

    def requires_insert(self, index: Index) -> bool:
        return True

    def support_queries(self, index: Index) -> list[SupportQuery]:
        needed = index.all_fields - self.given_fields
        queries: list[SupportQuery] = []
        for half in index.path.split(self._entity):
            if len(half.entities) == 1:
                continue
            neighbor_path = half.subpath(1)
            select = [field for field in sorted(needed) if field.parent in neighbor_path.entities]
            if not select:
                continue
            conditions = [Condition(neighbor_path.first.id_field, "=")]
            queries.append(SupportQuery(select, neighbor_path, conditions, statement=self, index=index))
        return queries

    def _outgoing_keys(self, path: KeyPath) -> list[ForeignKeyField]:
        keys: list[ForeignKeyField] = []
        for half in path.split(self._entity):
            if len(half.entities) > 1:
                key = half.keys[1]
                assert isinstance(key, ForeignKeyField)
                keys.append(key)
        return keys

    def _identity(self) -> tuple:
        return ("insert", self._entity, self._settings, self._connections)

    def __json__(self) -> jsondict:
        return {"type": "insert", "label": self._label, "entity": self._entity.name,
                "settings": [str(field) for field in self._settings],
                "connections": [str(key) for key in self._connections]}

    def __str__(self) -> str:
        settings = ", ".join(f"{field.name} = ?" for field in self._settings)
        text = f"INSERT INTO {self._entity} SET {settings}"
        if self._connections:
            text += " AND CONNECT TO " + ", ".join(f"{key.name}(?)" for key in self._connections)
        return text


class Update(UpdateStatement):
    """Changes field values of all rows of an entity that match the predicates.

    Parameters
    ----------
    entity : Entity
        The modified entity
    key_path : KeyPath
        The path that the predicates are located on. Must start at the modified entity.
    settings : Iterable[Field]
        The fields that receive new values. Neither the ID nor foreign keys can be updated.
    conditions : Iterable[Condition]
        The predicates. At least one equality predicate has to be located on an end of the path.
    label : str, optional
        A human-readable name of the statement
    """

    def __init__(self, entity: Entity, key_path: KeyPath, settings: Iterable[Field], conditions: Iterable[Condition], *,
                 label: str = "") -> None:
        super().__init__(entity, key_path, settings, conditions, label=label)
        if not self._settings:
            raise InvalidStatementError("Update must set at least one field", label)
        for field in self._settings:
            if field.primary_key or isinstance(field, ForeignKeyField):
                raise InvalidStatementError(f"Key field {field} cannot be updated", label)
        self._check_eq_on_path_end()

    def modifies_index(self, index: Index) -> bool:
        return bool(self._modified_fields(index))

    def requires_delete(self, index: Index) -> bool:
        return bool(frozenset(self._settings) & index.key_fields)

    def requires_insert(self, index: Index) -> bool:
        return True

    def support_queries(self, index: Index) -> list[SupportQuery]:
        needed = index.all_fields if self.requires_delete(index) else index.key_fields
        needed = needed - frozenset(self._settings)
        return _own_support_query(self, index, needed) + self._support_queries_for_halves(index, needed)

    def _identity(self) -> tuple:
        return ("update", self._entity, self._key_path, self._settings, frozenset(self._conditions))

    def __json__(self) -> jsondict:
        return {"type": "update", "label": self._label, "entity": self._entity.name, "path": self._key_path,
                "settings": [str(field) for field in self._settings], "conditions": self._conditions}

    def __str__(self) -> str:
        settings = ", ".join(f"{field.name} = ?" for field in self._settings)
        return f"UPDATE {self._entity} FROM {self._key_path} SET {settings}{self._where_clause()}"


class Delete(UpdateStatement):
    """Removes all rows of an entity that match the predicates.

    Parameters
    ----------
    entity : Entity
        The entity whose rows are removed
    key_path : KeyPath
        The path that the predicates are located on. Must start at the modified entity.
    conditions : Iterable[Condition]
        The predicates. At least one equality predicate has to be located on an end of the path.
    label : str, optional
        A human-readable name of the statement
    """

    def __init__(self, entity: Entity, key_path: KeyPath, conditions: Iterable[Condition], *, label: str = "") -> None:
        super().__init__(entity, key_path, (), conditions, label=label)
        self._check_eq_on_path_end()

    def modifies_index(self, index: Index) -> bool:
        return self._entity in index.path.entities

    def requires_delete(self, index: Index) -> bool:
        return True

    def support_queries(self, index: Index) -> list[SupportQuery]:
        needed = index.key_fields
        return _own_support_query(self, index, needed) + self._support_queries_for_halves(index, needed)

    def _identity(self) -> tuple:
        return ("delete", self._entity, self._key_path, frozenset(self._conditions))

    def __json__(self) -> jsondict:
        return {"type": "delete", "label": self._label, "entity": self._entity.name, "path": self._key_path,
                "conditions": self._conditions}

    def __str__(self) -> str:
        return f"DELETE {self._entity} FROM {self._key_path}{self._where_clause()}"


def _own_support_query(statement: UpdateStatement, index: Index, needed: frozenset[Field]) -> list[SupportQuery]:
    """Provides the support query that locates the modified rows and fetches their own values.

    The ID of the modified entity is always fetched (unless the statement provides it), since further support queries
    use it to look up related entities.
    """
    entity = statement.entity
    known = frozenset(field for field in statement.given_fields if field.parent == entity)
    select = [field for field in sorted(needed | {entity.id_field}) if field.parent == entity and field not in known]
    if not select:
        return []
    return [SupportQuery(select, statement.key_path, statement.conditions, statement=statement, index=index)]
