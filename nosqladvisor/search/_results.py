from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import IO, Optional

import pandas as pd

from .. import util
from ..cost import Cost, CostModel
from ..indexes import Index, total_size
from ..plans import QueryPlan, UpdatePlan
from ..qal import Query, Statement, UpdateStatement
from ..util import jsondict
from ..workloads import Workload


class SearchResults:
    """Captures the outcome of an index selection search.

    The results consist of the selected indexes as well as the plans that execute each statement of the workload on these
    indexes: one query plan per query, and one update plan per update statement and modified index.

    Parameters
    ----------
    workload : Workload
        The workload that the indexes were selected for
    cost_model : CostModel
        The cost model that was used to estimate the plans
    indexes : Iterable[Index]
        The selected indexes
    query_plans : Mapping[Query, QueryPlan]
        The plan for each query of the workload
    update_plans : Mapping[UpdateStatement, list[UpdatePlan]]
        The plans for each update statement of the workload
    max_space : float, optional
        The storage budget of the search. Defaults to an unlimited budget.
    """

    def __init__(self, workload: Workload, cost_model: CostModel, indexes: Iterable[Index],
                 query_plans: Mapping[Query, QueryPlan], update_plans: Mapping[UpdateStatement, list[UpdatePlan]], *,
                 max_space: float = math.inf) -> None:
        self._workload = workload
        self._cost_model = cost_model
        self._indexes = sorted(dict.fromkeys(indexes))
        self._query_plans = dict(query_plans)
        self._update_plans = {statement: list(plans) for statement, plans in update_plans.items()}
        self._max_space = max_space

    @property
    def workload(self) -> Workload:
        return self._workload

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @property
    def indexes(self) -> list[Index]:
        """Get the selected indexes, sorted by their description."""
        return list(self._indexes)

    @property
    def query_plans(self) -> dict[Query, QueryPlan]:
        return dict(self._query_plans)

    @property
    def update_plans(self) -> dict[UpdateStatement, list[UpdatePlan]]:
        return {statement: list(plans) for statement, plans in self._update_plans.items()}

    @property
    def max_space(self) -> float:
        return self._max_space

    @property
    def total_size(self) -> int:
        """Get the combined size of all selected indexes."""
        return total_size(self._indexes)

    @property
    def total_cost(self) -> Cost:
        """Get the cost of the entire workload, weighting the cost of each statement by the statement's weight."""
        return sum(self._workload.weight(statement) * self.statement_cost(statement)
                   for statement in self._workload.statements())

    def statement_cost(self, statement: Statement) -> Cost:
        """Provides the (unweighted) cost of a single statement.

        For queries, this is the cost of their plan. For update statements, this is the cost of maintaining all modified
        indexes.
        """
        if isinstance(statement, Query):
            return self._query_plans[statement].cost
        return sum(plan.cost for plan in self._update_plans.get(statement, []))

    def plans_for(self, statement: str | Statement) -> QueryPlan | list[UpdatePlan]:
        """Provides the plans of a specific statement.

        Parameters
        ----------
        statement : str | Statement
            The statement or its label

        Returns
        -------
        QueryPlan | list[UpdatePlan]
            The query plan for queries, or the update plans for update statements

        Raises
        ------
        KeyError
            If the statement is not part of the workload
        """
        if isinstance(statement, str):
            statement = self._workload[statement]
        if isinstance(statement, Query):
            return self._query_plans[statement]
        return list(self._update_plans.get(statement, []))

    def used_indexes(self) -> set[Index]:
        """Determines all indexes that are accessed by at least one plan.

        Indexes that are only maintained by update plans, but never read, do not count as used.
        """
        used = set()
        for plan in self._query_plans.values():
            used.update(plan.indexes)
        for plans in self._update_plans.values():
            for update_plan in plans:
                for support_plan in update_plan.query_plans:
                    used.update(support_plan.indexes)
        return used

    def validate(self) -> None:
        """Checks, whether the results are consistent.

        Raises
        ------
        InvariantViolationError
            If a query does not have a plan, a plan accesses an index that was not selected, a selected index is never
            used, a modified index is not maintained, or the selected indexes exceed the storage budget
        """
        selected = set(self._indexes)
        for query in self._workload.queries():
            if query not in self._query_plans:
                raise util.InvariantViolationError(f"No plan for query '{query.describe()}'")
        for update in self._workload.updates():
            maintained = {plan.index for plan in self._update_plans.get(update, [])}
            modified = {index for index in self._indexes if update.modifies_index(index)}
            if maintained != modified:
                raise util.InvariantViolationError(f"Update '{update.describe()}' does not maintain all modified indexes")

        used = self.used_indexes()
        unselected = used - selected
        if unselected:
            keys = ", ".join(sorted(index.key for index in unselected))
            raise util.InvariantViolationError(f"Plans use indexes that were not selected: {keys}")
        unused = selected - used
        if unused:
            keys = ", ".join(sorted(index.key for index in unused))
            raise util.InvariantViolationError(f"Selected indexes are not used by any plan: {keys}")

        if self.total_size > self._max_space:
            raise util.InvariantViolationError(f"Selected indexes exceed the storage budget: "
                                               f"{self.total_size} > {self._max_space}")

    def as_df(self) -> pd.DataFrame:
        """Provides the plans as a data frame, one row per statement of the workload.

        Returns
        -------
        pd.DataFrame
            The data frame with columns *label*, *statement*, *type*, *weight*, *cost*, *weighted_cost* and *indexes* (the
            keys of all indexes that the statement reads or maintains)
        """
        rows: list[dict] = []
        for label, statement in self._workload.entries():
            if isinstance(statement, Query):
                indexes = self._query_plans[statement].indexes
            else:
                indexes = util.flatten(plan.indexes for plan in self._update_plans.get(statement, []))
            cost = self.statement_cost(statement)
            weight = self._workload.weight(label)
            rows.append({"label": label, "statement": str(statement), "type": type(statement).__name__.lower(),
                         "weight": weight, "cost": cost, "weighted_cost": weight * cost,
                         "indexes": list(dict.fromkeys(index.key for index in indexes))})
        return util.as_df(rows, columns=["label", "statement", "type", "weight", "cost", "weighted_cost", "indexes"])

    def indexes_df(self) -> pd.DataFrame:
        """Provides the selected indexes as a data frame, one row per index."""
        rows = [{"key": index.key, "hash_fields": [str(field) for field in sorted(index.hash_fields)],
                 "order_fields": [str(field) for field in index.order_fields],
                 "extra": [str(field) for field in sorted(index.extra)], "path": str(index.path),
                 "entry_size": index.entry_size, "size": index.size}
                for index in self._indexes]
        return util.as_df(rows, columns=["key", "hash_fields", "order_fields", "extra", "path", "entry_size", "size"])

    def to_json(self, file: Optional[IO[str]] = None, **kwargs) -> Optional[str]:
        """Exports the results as JSON.

        Parameters
        ----------
        file : Optional[IO[str]], optional
            If given, the JSON is written to this file. Otherwise, it is returned as a string.
        **kwargs
            Additional arguments for the JSON encoder, e.g. ``indent``

        Returns
        -------
        Optional[str]
            The JSON string if no file was given
        """
        if file is not None:
            util.to_json_dump(self, file, **kwargs)
            return None
        return util.to_json(self, **kwargs)

    def __json__(self) -> jsondict:
        statements = []
        for label, statement in self._workload.entries():
            plans = self.plans_for(statement)
            statements.append({"label": label, "weight": self._workload.weight(label), "statement": statement,
                               "cost": self.statement_cost(statement), "plans": plans})
        return {"cost_model": self._cost_model.describe(),
                "max_space": None if math.isinf(self._max_space) else self._max_space,
                "total_size": self.total_size, "total_cost": self.total_cost,
                "indexes": self._indexes, "statements": statements}

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return (f"SearchResults({len(self._indexes)} indexes, size={self.total_size}, "
                f"cost={self.total_cost:g})")
