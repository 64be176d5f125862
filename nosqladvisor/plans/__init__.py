"""Plans describe how the statements of a workload are executed on a set of indexes.

A `QueryPlan` is a sequence of steps: index lookups that fetch entries of a specific index, followed by in-memory filters,
sorts and limits. Plans are produced by the `QueryPlanner`, which explores all ways to answer a query with the available
indexes and picks the cheapest one according to a `CostModel`.

Update statements are handled by the `UpdatePlanner`. For each index that an update modifies, it computes an `UpdatePlan`
consisting of the query plans of the support queries (to fetch the values that are required to write the index entries) and
the actual delete and insert steps.
"""

from ._steps import (
    RangeSelectivity,
    QueryState,
    PlanStep,
    IndexLookupStep,
    FilterStep,
    SortStep,
    LimitStep,
    filter_cardinality,
    finishing_steps,
)
from ._planner import NoPlanError, QueryPlan, QueryPlanner
from ._update import UpdateState, InsertPlanStep, DeletePlanStep, UpdatePlan, UpdatePlanner

__all__ = [
    "RangeSelectivity",
    "QueryState",
    "PlanStep",
    "IndexLookupStep",
    "FilterStep",
    "SortStep",
    "LimitStep",
    "filter_cardinality",
    "finishing_steps",
    "NoPlanError",
    "QueryPlan",
    "QueryPlanner",
    "UpdateState",
    "InsertPlanStep",
    "DeletePlanStep",
    "UpdatePlan",
    "UpdatePlanner",
]
