from __future__ import annotations

import dataclasses
from collections.abc import Iterable

from ._planner import QueryPlan, QueryPlanner
from ._steps import PlanStep, filter_cardinality
from ..cost import Cost, CostModel
from ..indexes import Index
from ..qal import Insert, UpdateStatement
from ..util import jsondict


@dataclasses.dataclass(frozen=True)
class UpdateState:
    """Describes which index is maintained by an update plan and how many of its entries are affected.

    Attributes
    ----------
    statement : UpdateStatement
        The statement that modifies the index
    index : Index
        The maintained index
    cardinality : float
        The estimated number of index entries that have to be written or removed
    """
    statement: UpdateStatement
    index: Index
    cardinality: float


class InsertPlanStep(PlanStep):
    """Writes new entries to an index."""

    def __init__(self, state: UpdateState) -> None:
        super().__init__(state)

    @property
    def index(self) -> Index:
        return self.state.index

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.insert_cost(self)

    def _signature(self) -> tuple:
        return ("insert", self.state.index, self.cardinality)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description["index"] = self.state.index.key
        return description

    def __str__(self) -> str:
        return f"Insert({self.state.index.key}) * {self.cardinality:g}"


class DeletePlanStep(PlanStep):
    """Removes entries from an index."""

    def __init__(self, state: UpdateState) -> None:
        super().__init__(state)

    @property
    def index(self) -> Index:
        return self.state.index

    def _compute_cost(self, cost_model: CostModel) -> Cost:
        return cost_model.delete_cost(self)

    def _signature(self) -> tuple:
        return ("delete", self.state.index, self.cardinality)

    def __json__(self) -> jsondict:
        description = super().__json__()
        description["index"] = self.state.index.key
        return description

    def __str__(self) -> str:
        return f"Delete({self.state.index.key}) * {self.cardinality:g}"


class UpdatePlan:
    """An update plan describes how an update statement maintains a single index.

    The plan first executes the plans of all support queries to fetch the necessary values. Afterwards, outdated entries are
    removed and new entries are written, depending on the statement.

    Parameters
    ----------
    statement : UpdateStatement
        The update statement
    index : Index
        The maintained index
    query_plans : Iterable[QueryPlan]
        The plans of the support queries
    update_steps : Iterable[PlanStep]
        The delete and insert steps. Their cost has to be estimated already.
    """

    def __init__(self, statement: UpdateStatement, index: Index, query_plans: Iterable[QueryPlan],
                 update_steps: Iterable[PlanStep]) -> None:
        self._statement = statement
        self._index = index
        self._query_plans = tuple(query_plans)
        self._update_steps = tuple(update_steps)

    @property
    def statement(self) -> UpdateStatement:
        return self._statement

    @property
    def index(self) -> Index:
        return self._index

    @property
    def query_plans(self) -> tuple[QueryPlan, ...]:
        return self._query_plans

    @property
    def update_steps(self) -> tuple[PlanStep, ...]:
        return self._update_steps

    @property
    def cost(self) -> Cost:
        """Get the total cost: the cost of all support query plans and of all update steps."""
        return (sum(plan.cost for plan in self._query_plans)
                + sum(step.cost for step in self._update_steps))

    @property
    def indexes(self) -> list[Index]:
        """Get all indexes that the plan touches. The maintained index comes first, followed by those of the support queries."""
        indexes = [self._index]
        for plan in self._query_plans:
            indexes.extend(plan.indexes)
        return list(dict.fromkeys(indexes))

    def __json__(self) -> jsondict:
        return {"statement": self._statement.describe(), "index": self._index.key, "cost": self.cost,
                "query_plans": list(self._query_plans), "update_steps": list(self._update_steps)}

    def __hash__(self) -> int:
        return hash((self._statement, self._index, self._query_plans, self._update_steps))

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, UpdatePlan)
                and self._statement == other.statement and self._index == other.index
                and self._query_plans == other.query_plans and self._update_steps == other.update_steps)

    def __repr__(self) -> str:
        return f"UpdatePlan({self._statement.describe()}, {self._index.key}, cost={self.cost:g})"

    def __str__(self) -> str:
        lines = [f"{self._statement.describe()} -> {self._index.key} [cost={self.cost:g}]"]
        for plan in self._query_plans:
            lines.extend("  " + line for line in str(plan).splitlines())
        lines.extend(f"  {step}" for step in self._update_steps)
        return "\n".join(lines)


class UpdatePlanner:
    """The update planner determines how an update statement maintains the indexes that it modifies.

    Parameters
    ----------
    indexes : Iterable[Index]
        The indexes that the support queries can use
    cost_model : CostModel
        The cost model to estimate the steps with
    """

    def __init__(self, indexes: Iterable[Index], cost_model: CostModel) -> None:
        self._query_planner = QueryPlanner(indexes, cost_model)
        self._cost_model = cost_model

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    def plan(self, statement: UpdateStatement, index: Index) -> UpdatePlan:
        """Computes the plan to maintain a single index.

        Parameters
        ----------
        statement : UpdateStatement
            The update statement. It must modify the index.
        index : Index
            The maintained index

        Returns
        -------
        UpdatePlan
            The plan

        Raises
        ------
        ValueError
            If the statement does not modify the index
        NoPlanError
            If one of the support queries cannot be answered with the available indexes
        """
        if not statement.modifies_index(index):
            raise ValueError(f"Statement '{statement.describe()}' does not modify index {index.key}")

        query_plans = [self._query_planner.min_plan(query) for query in statement.support_queries(index)]
        state = UpdateState(statement, index, self._cardinality(statement, index, query_plans))

        update_steps: list[PlanStep] = []
        if statement.requires_delete(index):
            update_steps.append(DeletePlanStep(state))
        if statement.requires_insert(index):
            update_steps.append(InsertPlanStep(state))
        for step in update_steps:
            step.estimate_cost(self._cost_model)
        return UpdatePlan(statement, index, query_plans, update_steps)

    def plans_for_update(self, statement: UpdateStatement, indexes: Iterable[Index]) -> list[UpdatePlan]:
        """Computes the plans for all indexes that a statement modifies.

        Indexes that are not modified by the statement are skipped.

        Raises
        ------
        NoPlanError
            If one of the support queries cannot be answered with the available indexes
        """
        return [self.plan(statement, index) for index in indexes if statement.modifies_index(index)]

    def _cardinality(self, statement: UpdateStatement, index: Index, query_plans: list[QueryPlan]) -> float:
        if isinstance(statement, Insert):
            return 1
        if query_plans:
            return query_plans[-1].cardinality
        return filter_cardinality(index.entries, statement.eq_fields, statement.range_fields)
