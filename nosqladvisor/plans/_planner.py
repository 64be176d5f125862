from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from typing import Optional, overload

from ._steps import IndexLookupStep, PlanStep, QueryState, finishing_steps
from ..cost import Cost, CostModel
from ..indexes import Index
from ..qal import Query, Statement
from ..util import jsondict


class NoPlanError(RuntimeError):
    """Indicates that a statement cannot be answered using the available indexes.

    Parameters
    ----------
    statement : Statement
        The statement that could not be planned
    msg : str, optional
        Additional information about the failure
    """

    def __init__(self, statement: Statement, msg: str = "") -> None:
        description = f"No plan for statement '{statement.describe()}'"
        super().__init__(f"{description}: {msg}" if msg else description)
        self.statement = statement


class QueryPlan(Sequence[PlanStep]):
    """A query plan is a sequence of steps that computes the result of a query.

    Each plan exclusively owns its steps. When a plan is created, the steps are copied and re-linked such that the `parent` of
    each step is the step before it in this very plan.

    Parameters
    ----------
    query : Query
        The query that is answered by the plan
    steps : Iterable[PlanStep]
        The steps of the plan in execution order. The cost of each step has to be estimated already.
    cost_model : CostModel
        The cost model that was used to estimate the steps
    """

    def __init__(self, query: Query, steps: Iterable[PlanStep], cost_model: CostModel) -> None:
        linked: list[PlanStep] = []
        for step in steps:
            linked.append(step.relink(linked[-1] if linked else None))
        self._query = query
        self._steps = tuple(linked)
        self._cost_model = cost_model
        self._cost = sum(step.cost for step in self._steps)

    @property
    def query(self) -> Query:
        return self._query

    @property
    def steps(self) -> tuple[PlanStep, ...]:
        return self._steps

    @property
    def cost(self) -> Cost:
        """Get the total cost of the plan, i.e. the sum of the costs of all steps."""
        return self._cost

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @property
    def cardinality(self) -> float:
        """Get the estimated number of results of the plan."""
        return self._steps[-1].cardinality

    @property
    def indexes(self) -> list[Index]:
        """Get the indexes that the plan accesses, in the order of their lookups."""
        return [step.index for step in self._steps if isinstance(step, IndexLookupStep)]

    def lookups(self) -> list[IndexLookupStep]:
        return [step for step in self._steps if isinstance(step, IndexLookupStep)]

    def __json__(self) -> jsondict:
        return {"query": self._query.describe(), "cost": self._cost, "cost_model": str(self._cost_model),
                "steps": list(self._steps)}

    @overload
    def __getitem__(self, index: int) -> PlanStep: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[PlanStep]: ...

    def __getitem__(self, index):
        return self._steps[index]

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[PlanStep]:
        return iter(self._steps)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, QueryPlan):
            return NotImplemented
        return (self._cost, len(self._steps)) < (other.cost, len(other))

    def __hash__(self) -> int:
        return hash((self._query, self._steps))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, QueryPlan) and self._query == other.query and self._steps == other.steps

    def __repr__(self) -> str:
        return f"QueryPlan({self._query.describe()}, cost={self._cost:g})"

    def __str__(self) -> str:
        lines = [f"{self._query.describe()} [cost={self._cost:g}]"]
        lines.extend(f"  {step}" for step in self._steps)
        return "\n".join(lines)


class QueryPlanner:
    """The query planner determines how a query can be answered using a fixed set of indexes.

    Plans are constructed by a depth-first search: starting from the first entity of the query's join order, each step picks
    an index that can be accessed with the values known so far. Predicates and sort fields that the lookups cannot resolve are
    handled by in-memory filter and sort steps which are appended automatically. The search for a plan stops once the query is
    answered. Its depth is bounded by the diameter of the query graph, since each lookup has to fetch new data.

    Parameters
    ----------
    indexes : Iterable[Index]
        The indexes that plans can use. The order of the indexes determines the order in which alternatives are explored,
        which in turn determines the winner among plans of equal cost.
    cost_model : CostModel
        The cost model to estimate the steps with
    """

    def __init__(self, indexes: Iterable[Index], cost_model: CostModel) -> None:
        self._indexes = list(dict.fromkeys(indexes))
        self._cost_model = cost_model

    @property
    def indexes(self) -> list[Index]:
        return list(self._indexes)

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    def find_plans_for_query(self, query: Query) -> list[QueryPlan]:
        """Computes all plans that answer a query.

        Parameters
        ----------
        query : Query
            The query to plan

        Returns
        -------
        list[QueryPlan]
            All distinct plans in the order in which they were found. The list is empty if the query cannot be answered with the
            available indexes.
        """
        plans: dict[QueryPlan, None] = {}
        for steps in self._search(query, QueryState.initial(query), [], 0, bound=None):
            plans.setdefault(QueryPlan(query, steps, self._cost_model))
        return list(plans)

    def min_plan(self, query: Query) -> QueryPlan:
        """Computes the cheapest plan for a query.

        Partial plans that are already more expensive than the best complete plan are not explored any further. If multiple
        plans have the same cost, the plan with fewer steps wins. Remaining ties are broken by the order of the indexes.

        Parameters
        ----------
        query : Query
            The query to plan

        Returns
        -------
        QueryPlan
            The cheapest plan

        Raises
        ------
        NoPlanError
            If the query cannot be answered with the available indexes
        """
        bound = _Bound()
        for steps in self._search(query, QueryState.initial(query), [], 0, bound=bound):
            cost = sum(step.cost for step in steps)
            if bound.best is None or (cost, len(steps)) < (bound.cost, len(bound.best)):
                bound.best = steps
                bound.cost = cost
        if bound.best is None:
            raise NoPlanError(query, f"none of the {len(self._indexes)} indexes lead to an answer")
        return QueryPlan(query, bound.best, self._cost_model)

    def _search(self, query: Query, state: QueryState, steps: list[PlanStep], cost: Cost, *,
                bound: Optional[_Bound]) -> Iterator[list[PlanStep]]:
        max_lookups = 2 * (query.graph.diameter + 1)
        parent = steps[-1] if steps else None
        for index in self._indexes:
            lookup = IndexLookupStep.apply(index, state, parent)
            if lookup is None:
                continue
            next_steps = [lookup] + finishing_steps(lookup)
            next_cost = cost + sum(step.estimate_cost(self._cost_model) for step in next_steps)
            if bound is not None and next_cost > bound.cost:
                continue

            candidate = steps + next_steps
            next_state = next_steps[-1].state
            if next_state.answered:
                yield candidate
            elif next_state.lookups < max_lookups:
                yield from self._search(query, next_state, candidate, next_cost, bound=bound)


class _Bound:
    """The best complete plan found so far during a branch and bound search."""

    def __init__(self) -> None:
        self.best: Optional[list[PlanStep]] = None
        self.cost: Cost = math.inf
