"""nosqladvisor - A schema advisor for denormalized, index-only NoSQL stores.

Wide-column stores such as Apache Cassandra do not evaluate joins or arbitrary predicates. Instead, each query has to be
answered by looking up pre-computed, denormalized *indexes* (column families), each of which stores the data of a path through
the logical schema, keyed by the fields that the queries use for lookups. Designing these indexes by hand is tedious and
error-prone: each query might need its own index, indexes consume storage and every update has to maintain all indexes that
contain the modified data. The advisor automates this design process. Given a logical entity-relationship model and a
representative workload of queries and updates, it selects the indexes that answer every statement of the workload at minimal
estimated cost while staying within a storage budget.

On a high level, the advisor works as follows:

1. the `model` package describes the logical schema: entities, their fields and the foreign keys that connect them
2. the `qal` package describes the statements of the workload (queries, inserts, updates and deletes) and the paths through
   the model that they follow. A `Workload` bundles the statements along with their relative weights.
3. the `IndexEnumerator` derives candidate indexes from the statements of the workload
4. the `QueryPlanner` (and its sibling `UpdatePlanner` for modifications) determines how statements are executed on a given
   set of indexes. The cost of the plans is estimated by a `CostModel`.
5. the `Search` picks the subset of the candidates that should be materialized, using the planners as cost oracles. The
   result is a `SearchResults` object that contains the selected indexes and the plans of all statements.

The `util` package contains algorithms and types that do not belong to specific parts of the advisor and are more general in
nature.

Most of the relevant types are available directly from the main package, so generally you just need to
``import nosqladvisor as nsa``.
"""

from . import (
  cost,
  model,
  plans,
  qal,
  search,
  util
)
from .cost import CostModel, RequestCountCost, EntityCountCost, FieldSizeCost, CassandraCost, cost_model
from .enumerator import IndexEnumerator
from .indexes import Index, InvalidIndexError, materialize_view, total_size
from .model import Model, Entity, Field, IDField, ForeignKeyField
from .plans import NoPlanError, QueryPlan, QueryPlanner, UpdatePlan, UpdatePlanner
from .qal import Condition, KeyPath, Query, Insert, Update, Delete, QueryGraph
from .search import CapacityError, Search, SearchResults, SearchSettings
from .workloads import Workload

__version__ = "0.1.0"

__all__ = [
  "cost", "model", "plans", "qal", "search", "util",
  "CostModel", "RequestCountCost", "EntityCountCost", "FieldSizeCost", "CassandraCost", "cost_model",
  "IndexEnumerator",
  "Index", "InvalidIndexError", "materialize_view", "total_size",
  "Model", "Entity", "Field", "IDField", "ForeignKeyField",
  "NoPlanError", "QueryPlan", "QueryPlanner", "UpdatePlan", "UpdatePlanner",
  "Condition", "KeyPath", "Query", "Insert", "Update", "Delete", "QueryGraph",
  "CapacityError", "Search", "SearchResults", "SearchSettings",
  "Workload"
]
