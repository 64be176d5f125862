from __future__ import annotations

import abc
import copy
import dataclasses
from collections.abc import Iterable
from typing import Optional

from .. import util
from ..cost import Cost, CostModel
from ..indexes import Index
from ..model import Entity, Field
from ..qal import KeyPath, Query
from ..util import jsondict

RangeSelectivity = 0.1
"""The fraction of entries that is assumed to satisfy a range predicate."""


def filter_cardinality(cardinality: float, eq_fields: Iterable[Field], range_fields: Iterable[Field] = ()) -> float:
    """Estimates the cardinality after applying predicates.

    Each equality predicate keeps one out of *n* entries, where *n* is the number of distinct values of the field. Each range
    predicate keeps a constant fraction of the entries (see `RangeSelectivity`).
    """
    filtered = float(cardinality)
    for field in eq_fields:
        filtered /= field.cardinality
    for _ in range_fields:
        filtered *= RangeSelectivity
    return filtered


@dataclasses.dataclass(frozen=True)
class QueryState:
    """The query state captures which parts of a query are already answered by the steps of a (partial) plan.

    States are immutable. Each plan step computes a new state based on the state of its predecessor.

    Attributes
    ----------
    query : Query
        The query that is being planned
    join_path : KeyPath
        The part of the query's path that still has to be traversed. It starts at the entity that the next lookup has to
        start from.
    fetched : frozenset[Field]
        The fields that have been fetched by earlier lookups
    eq : tuple[Field, ...]
        The equality predicates that have not been applied yet
    range : tuple[Field, ...]
        The range predicates that have not been applied yet
    order_by : tuple[Field, ...]
        The sort fields that have not been satisfied yet
    cardinality : float
        The estimated number of results of the plan so far
    hash_cardinality : float
        The estimated number of partitions that the last lookup had to access
    lookups : int
        The number of index lookups of the plan so far
    limited : bool
        Whether the limit of the query has been applied
    """
    query: Query
    join_path: KeyPath
    fetched: frozenset[Field]
    eq: tuple[Field, ...]
    range: tuple[Field, ...]
    order_by: tuple[Field, ...]
    cardinality: float
    hash_cardinality: float = 1
    lookups: int = 0
    limited: bool = False

    @staticmethod
    def initial(query: Query) -> QueryState:
        """Provides the state before the first step of a plan."""
        join_order = query.join_order
        join_path = query.key_path if query.key_path.first == join_order[0] else query.key_path.reverse()
        return QueryState(query, join_path, frozenset(), query.eq_fields, query.range_fields, query.order,
                          cardinality=join_order[0].count)

    @property
    def joins(self) -> tuple[Entity, ...]:
        """Get the entities that still have to be visited, starting with the current one."""
        return self.join_path.entities

    @property
    def given(self) -> frozenset[Field]:
        """Get the fields whose values are provided by the query's equality predicates."""
        return frozenset(self.query.eq_fields)

    @property
    def answered(self) -> bool:
        """Checks, whether the plan so far computes the complete result of the query."""
        return self.answered_without_limit and (self.query.limit is None or self.limited)

    @property
    def answered_without_limit(self) -> bool:
        """Checks, whether the plan so far computes the query result, ignoring a potential limit."""
        return (len(self.joins) == 1
                and not self.eq and not self.range and not self.order_by
                and frozenset(self.query.select) <= self.fetched)

    def needed_fields(self, entity: Optional[Entity] = None) -> frozenset[Field]:
        """Provides all fields that the remaining steps of the plan still need to access.

        Parameters
        ----------
        entity : Optional[Entity], optional
            Restrict the fields to those of a specific entity

        Returns
        -------
        frozenset[Field]
            The selected fields as well as the fields of all unresolved predicates and sort fields
        """
        fields = frozenset(self.query.select) | frozenset(self.eq) | frozenset(self.range) | frozenset(self.order_by)
        if entity is None:
            return fields
        return frozenset(field for field in fields if field.parent == entity)

    def __json__(self) -> jsondict:
        return {"joins": [entity.name for entity in self.joins], "cardinality": self.cardinality,
                "hash_cardinality": self.hash_cardinality, "answered": self.answered}


class PlanStep(abc.ABC):
    """A single operation of a plan.

    Steps form a chain: each step knows its `parent`, i.e. the step that is executed directly before it (or *None* for the
    first step of a plan). The `state` describes the situation after the step has been executed.

    The cost of a step is determined by a `CostModel`, see `estimate_cost`. It is not set when the step is created, but
    rather by the planner that decides whether the step should be considered at all.

    Parameters
    ----------
    state : QueryState
        The state after the step
    parent : Optional[PlanStep], optional
        The preceding step
    """

    def __init__(self, state, parent: Optional[PlanStep] = None) -> None:
        self._state = state
        self._parent = parent
        self._cost: Optional[Cost] = None

    @property
    def state(self):
        """Get the state after this step was executed."""
        return self._state

    @property
    def parent(self) -> Optional[PlanStep]:
        """Get the step that is executed before this one, if there is any."""
        return self._parent

    @property
    def cardinality(self) -> float:
        """Get the estimated number of results after this step."""
        return self._state.cardinality

    @property
    def cost(self) -> Cost:
        """Get the cost of the step.

        Raises
        ------
        StateError
            If the cost has not been estimated yet
        """
        if self._cost is None:
            raise util.StateError(f"Cost of step {self} has not been estimated")
        return self._cost

    def estimate_cost(self, cost_model: CostModel) -> Cost:
        """Computes and stores the cost of the step using the given cost model."""
        self._cost = self._compute_cost(cost_model)
        return self._cost

    def relink(self, parent: Optional[PlanStep]) -> PlanStep:
        """Provides a copy of this step that is attached to a different parent step. The state and cost are retained."""
        step = copy.copy(self)
        step._parent = parent
        return step

    @abc.abstractmethod
    def _compute_cost(self, cost_model: CostModel) -> Cost:
        raise NotImplementedError

    @abc.abstractmethod
    def _signature(self) -> tuple:
        raise NotImplementedError

    def __json__(self) -> jsondict:
        return {"type": type(self).__name__, "cardinality": self.cardinality, "cost": self._cost}

    def __hash__(self) -> int:
        return hash(self._signature())

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self._signature() == other._signature()

    def __repr__(self) -> str:
        return str(self)


class IndexLookupStep(PlanStep):
    """Fetches entries of an index, given the values of its hash fields.

    A lookup can also resolve predicates and sort fields of the query: equality predicates that match the hash fields or a
    prefix of the order fields, a range predicate on the next order field, and sort fields that match the following order
    fields.

    Use `apply` to create lookups, since it checks whether the index can actually be used in a specific state.

    Parameters
    ----------
    index : Index
        The index that is accessed
    state : QueryState
        The state after the lookup
    parent : Optional[PlanStep]
        The preceding step
    fields : frozenset[Field]
        The fields that the lookup fetches
    eq_filter : frozenset[Field]
        The equality predicates that are resolved by the lookup
    range_filter : Optional[Field]
        The range predicate that is resolved by the lookup, if any
    order_by : tuple[Field, ...]
        The sort fields that are satisfied by the lookup
    """

    @staticmethod
    def apply(index: Index, state: QueryState, parent: Optional[PlanStep]) -> Optional[IndexLookupStep]:
        """Tries to use an index as the next lookup of a plan.

        Parameters
        ----------
        index : Index
            The index to access
        state : QueryState
            The current state of the plan
        parent : Optional[PlanStep]
            The last step of the plan so far

        Returns
        -------
        Optional[IndexLookupStep]
            The lookup, or *None* if the index cannot be used in the current state
        """
        query = state.query
        segment_length = len(index.path.entities)
        if segment_length > len(state.joins):
            return None
        if index.path.first != state.joins[0] or index.path != state.join_path.subpath(0, segment_length):
            return None

        current = state.joins[0]
        first_lookup = state.lookups == 0
        if not index.hash_fields <= state.fetched | state.given:
            return None
        if not first_lookup and not (current.id_field in index.hash_fields and current.id_field in state.fetched):
            return None

        covered = state.fetched | index.all_fields
        for entity in index.path.entities[:-1]:
            if not state.needed_fields(entity) <= covered:
                return None
        last_entity = index.path.entities[-1]
        if last_entity.id_field not in index.all_fields and not state.needed_fields(last_entity) <= covered:
            return None

        fields = index.key_fields | (index.extra & query.all_fields)
        needed = state.needed_fields() | {current.id_field}
        if segment_length == 1 and not (fields - state.fetched) & needed:
            return None

        eq_filter = set(index.hash_fields & frozenset(state.eq))
        position = 0
        while position < len(index.order_fields) and index.order_fields[position] in state.eq:
            eq_filter.add(index.order_fields[position])
            position += 1
        range_filter = None
        if position < len(index.order_fields) and index.order_fields[position] in state.range:
            range_filter = index.order_fields[position]
        order_prefix: tuple[Field, ...] = ()
        if first_lookup and state.order_by:
            order_prefix = util.longest_common_prefix(index.order_fields[position:], state.order_by)

        hash_cardinality = 1 if first_lookup else parent.state.cardinality
        cardinality = index.per_hash_count * hash_cardinality
        cardinality = filter_cardinality(cardinality, eq_filter - index.hash_fields,
                                         [range_filter] if range_filter else [])

        next_state = dataclasses.replace(
            state,
            join_path=state.join_path.subpath(segment_length - 1),
            fetched=state.fetched | fields,
            eq=tuple(field for field in state.eq if field not in eq_filter),
            range=tuple(field for field in state.range if field != range_filter),
            order_by=state.order_by[len(order_prefix):],
            cardinality=cardinality,
            hash_cardinality=hash_cardinality,
            lookups=state.lookups + 1,
        )
        return IndexLookupStep(index, next_state, parent, fields=fields, eq_filter=frozenset(eq_filter),
                               range_filter=range_filter, order_by=order_prefix)

    def __init__(self, index: Index, state: QueryState, parent: Optional[PlanStep], *, fields: frozenset[Field],
                 eq_filter: frozenset[Field] = frozenset(), range_filter: Optional[Field] = None,
                 order_by: tuple[Field, ...] = ()) -> None:
        super().__init__(state, parent)
        self._index = index
        self._fields = fields
        self._eq_filter = eq_filter
        self._range_filter = range_filter
        self._order_by = order_by

    @property
    def index(self) -> Index:
        return self._index

    @property
    def fields(self) -> frozenset[Field]:
        """Get the fields that are fetched by the lookup."""
        return self._fields

    @property
    def eq_filter(self) -> frozenset[Field]:
        return self._eq_filter

    @property
    def range_filter(self) -> Optional[Field]:
        return self._range_filter

    @property
    def order_by(self) -> tuple[Field, ...]:
        return self._order_by

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.index_lookup_cost(self)

    def _signature(self) -> tuple:
        return ("lookup", self._index, self.cardinality)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description.update({"index": self._index.key,
                            "eq_filter": [str(field) for field in sorted(self._eq_filter)],
                            "range_filter": str(self._range_filter) if self._range_filter else None,
                            "order_by": [str(field) for field in self._order_by]})
        return description

    def __str__(self) -> str:
        return f"IndexLookup({self._index.key}: {self._index}) * {self.cardinality:g}"


class FilterStep(PlanStep):
    """Applies predicates to fetched entries in memory."""

    def __init__(self, state: QueryState, parent: PlanStep, *, eq: tuple[Field, ...], range: tuple[Field, ...]) -> None:
        super().__init__(state, parent)
        self._eq = eq
        self._range = range

    @property
    def eq(self) -> tuple[Field, ...]:
        return self._eq

    @property
    def range(self) -> tuple[Field, ...]:
        return self._range

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.filter_cost(self)

    def _signature(self) -> tuple:
        return ("filter", self._eq, self._range, self.cardinality)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description.update({"eq": [str(field) for field in self._eq], "range": [str(field) for field in self._range]})
        return description

    def __str__(self) -> str:
        predicates = [str(field) for field in self._eq + self._range]
        return f"Filter({', '.join(predicates)}) * {self.cardinality:g}"


class SortStep(PlanStep):
    """Sorts fetched entries in memory."""

    def __init__(self, state: QueryState, parent: PlanStep, *, sort_fields: tuple[Field, ...]) -> None:
        super().__init__(state, parent)
        self._sort_fields = sort_fields

    @property
    def sort_fields(self) -> tuple[Field, ...]:
        return self._sort_fields

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.sort_cost(self)

    def _signature(self) -> tuple:
        return ("sort", self._sort_fields)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description["sort_fields"] = [str(field) for field in self._sort_fields]
        return description

    def __str__(self) -> str:
        return f"Sort({', '.join(str(field) for field in self._sort_fields)})"


class LimitStep(PlanStep):
    """Truncates the result after a fixed number of entries."""

    def __init__(self, state: QueryState, parent: PlanStep, *, limit: int) -> None:
        super().__init__(state, parent)
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.limit_cost(self)

    def _signature(self) -> tuple:
        return ("limit", self._limit)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description["limit"] = self._limit
        return description

    def __str__(self) -> str:
        return f"Limit({self._limit})"


def finishing_steps(lookup: IndexLookupStep) -> list[PlanStep]:
    """Determines the in-memory operations that have to follow an index lookup.

    Predicates whose fields are available are filtered right away. Once everything else is answered, unsatisfied sort fields
    are handled by a sort and a limit is applied if the query has one.

    Parameters
    ----------
    lookup : IndexLookupStep
        The lookup

    Returns
    -------
    list[PlanStep]
        The following steps, in execution order. Each step is linked to its predecessor.
    """
    steps: list[PlanStep] = []
    current: PlanStep = lookup
    state: QueryState = lookup.state

    filter_eq = tuple(field for field in state.eq if field in state.fetched)
    filter_range = tuple(field for field in state.range if field in state.fetched)
    if filter_eq or filter_range:
        state = dataclasses.replace(state,
                                    eq=tuple(field for field in state.eq if field not in filter_eq),
                                    range=tuple(field for field in state.range if field not in filter_range),
                                    cardinality=filter_cardinality(state.cardinality, filter_eq, filter_range))
        current = FilterStep(state, current, eq=filter_eq, range=filter_range)
        steps.append(current)

    ready_to_sort = (state.order_by and len(state.joins) == 1 and not state.eq and not state.range
                     and frozenset(state.order_by) <= state.fetched
                     and frozenset(state.query.select) <= state.fetched)
    if ready_to_sort:
        sort_fields = state.order_by
        state = dataclasses.replace(state, order_by=())
        current = SortStep(state, current, sort_fields=sort_fields)
        steps.append(current)

    limit = state.query.limit
    if limit is not None and not state.limited and state.answered_without_limit:
        state = dataclasses.replace(state, cardinality=min(float(limit), state.cardinality), limited=True)
        current = LimitStep(state, current, limit=limit)
        steps.append(current)

    return steps
