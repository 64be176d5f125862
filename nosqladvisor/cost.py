"""Cost models estimate how expensive the individual steps of a plan are.

All cost models implement the `CostModel` interface. The planner asks each step for its cost, which in turn calls the
appropriate method of the cost model (e.g. `CostModel.index_lookup_cost` for an index lookup). Hence, a cost model only
needs to provide the costs of the step types, the total cost of a plan is always the sum of its step costs.

The costs are estimates that are only used to rank alternatives against each other. They are not meant to predict actual
execution times.

The following cost models are available:

- `RequestCountCost` counts the number of requests that have to be sent to the data store
- `EntityCountCost` counts the number of entries that are read or written
- `FieldSizeCost` counts the number of bytes that are read or written
- `CassandraCost` combines per-request, per-partition and per-row costs, with constants that can be calibrated for a
  specific data store

Use `cost_model` to obtain a cost model by name.
"""
from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from .util import jsondict

if TYPE_CHECKING:
    from .plans import DeletePlanStep, FilterStep, IndexLookupStep, InsertPlanStep, LimitStep, SortStep

Cost = float
"""Type alias for a cost value. All costs are non-negative."""


class CostModel(abc.ABC):
    """The cost model estimates how expensive executing a certain plan step is.

    Steps of a plan are estimated one after another. At the time a step is estimated, its state (e.g. the cardinality
    estimate) is already fully computed and all earlier steps of the plan have been estimated.

    Filter, limit and sort steps are handled uniformly by all cost models: filters and limits are free, since they are applied
    to data that has already been fetched. Sorting has a constant cost. Implementations can overwrite these defaults if
    necessary.
    """

    def filter_cost(self, step: FilterStep) -> Cost:
        return 0

    def limit_cost(self, step: LimitStep) -> Cost:
        return 0

    def sort_cost(self, step: SortStep) -> Cost:
        return 1

    @abc.abstractmethod
    def index_lookup_cost(self, step: IndexLookupStep) -> Cost:
        """Computes the cost of looking up entries of an index.

        Parameters
        ----------
        step : IndexLookupStep
            The lookup. Its `parent` is *None* for the first lookup of a plan.

        Returns
        -------
        Cost
            The estimated cost
        """
        raise NotImplementedError

    @abc.abstractmethod
    def insert_cost(self, step: InsertPlanStep) -> Cost:
        """Computes the cost of writing new entries to an index."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_cost(self, step: DeletePlanStep) -> Cost:
        """Computes the cost of removing entries from an index."""
        raise NotImplementedError

    @abc.abstractmethod
    def describe(self) -> jsondict:
        """Provides a JSON-serializable representation of the specific cost model, as well as important parameters.

        Returns
        -------
        jsondict
            The description
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return type(self).__name__


class RequestCountCost(CostModel):
    """Counts the number of requests that are issued to the data store.

    The first lookup of a plan is a single request. Each following lookup issues one request per entry of the preceding
    step. Insertions and deletions issue one request per affected entry.
    """

    def index_lookup_cost(self, step: IndexLookupStep) -> Cost:
        if step.parent is None:
            return 1
        return step.parent.state.cardinality

    def insert_cost(self, step: InsertPlanStep) -> Cost:
        return step.state.cardinality

    def delete_cost(self, step: DeletePlanStep) -> Cost:
        return step.state.cardinality

    def describe(self) -> jsondict:
        return {"name": "request_count"}


class EntityCountCost(CostModel):
    """Counts the number of index entries that are read or written."""

    def index_lookup_cost(self, step: IndexLookupStep) -> Cost:
        return step.state.cardinality

    def insert_cost(self, step: InsertPlanStep) -> Cost:
        return step.state.cardinality

    def delete_cost(self, step: DeletePlanStep) -> Cost:
        return step.state.cardinality

    def describe(self) -> jsondict:
        return {"name": "entity_count"}


class FieldSizeCost(CostModel):
    """Counts the number of bytes that are transferred.

    A lookup transfers all fields of the index for each entry it reads. If the lookup already answers the query, only the
    selected fields have to be transferred. Insertions and deletions transfer a single index entry.
    """

    def index_lookup_cost(self, step: IndexLookupStep) -> Cost:
        fields = step.index.all_fields
        if step.state.answered:
            fields = fields & frozenset(step.state.query.select)
        return step.state.cardinality * sum(field.size for field in fields)

    def insert_cost(self, step: InsertPlanStep) -> Cost:
        return step.index.entry_size

    def delete_cost(self, step: DeletePlanStep) -> Cost:
        return step.index.entry_size

    def describe(self) -> jsondict:
        return {"name": "field_size"}


class CassandraCost(CostModel):
    """A cost model for wide-column stores such as Apache Cassandra.

    Each lookup has a fixed overhead (`index_cost`), an overhead for each partition that has to be accessed
    (`partition_cost`) and a cost for each row that is read (`row_cost`). Insertions and deletions have a fixed cost per
    affected row.

    The default constants roughly correspond to the latencies (in milliseconds) of a small Cassandra cluster. They should be
    calibrated for the actual deployment.

    Parameters
    ----------
    index_cost : float, optional
        Fixed cost per lookup
    partition_cost : float, optional
        Cost per accessed partition
    row_cost : float, optional
        Cost per read row
    insert_cost : float, optional
        Cost per inserted row
    delete_cost : float, optional
        Cost per deleted row
    """

    def __init__(self, *, index_cost: float = 0.0078, partition_cost: float = 0.0014, row_cost: float = 1.6e-05,
                 insert_cost: float = 0.013, delete_cost: float = 0.0086) -> None:
        constants = {"index_cost": index_cost, "partition_cost": partition_cost, "row_cost": row_cost,
                     "insert_cost": insert_cost, "delete_cost": delete_cost}
        for name, value in constants.items():
            if value < 0:
                raise ValueError(f"Cost constant '{name}' must not be negative: {value}")
        self._options = constants

    @property
    def options(self) -> dict[str, float]:
        return dict(self._options)

    def index_lookup_cost(self, step: IndexLookupStep) -> Cost:
        rows = step.state.cardinality
        partitions = step.state.hash_cardinality
        return (self._options["index_cost"]
                + partitions * self._options["partition_cost"]
                + rows * self._options["row_cost"])

    def insert_cost(self, step: InsertPlanStep) -> Cost:
        return step.state.cardinality * self._options["insert_cost"]

    def delete_cost(self, step: DeletePlanStep) -> Cost:
        return step.state.cardinality * self._options["delete_cost"]

    def describe(self) -> jsondict:
        return {"name": "cassandra", **self._options}


_CostModels: dict[str, type[CostModel]] = {
    "request_count": RequestCountCost,
    "entity_count": EntityCountCost,
    "field_size": FieldSizeCost,
    "cassandra": CassandraCost,
}


def cost_model(name: str, **options) -> CostModel:
    """Creates a cost model by its name.

    Parameters
    ----------
    name : str
        One of *request_count*, *entity_count*, *field_size* or *cassandra*
    **options
        Parameters of the cost model. Only the Cassandra cost model accepts parameters.

    Returns
    -------
    CostModel
        The cost model

    Raises
    ------
    ValueError
        If the name is unknown or options are given for a cost model without parameters
    """
    if name not in _CostModels:
        raise ValueError(f"Unknown cost model: '{name}'. Available models: {', '.join(_CostModels)}")
    model_type = _CostModels[name]
    if options and model_type is not CassandraCost:
        raise ValueError(f"Cost model '{name}' does not accept options")
    return model_type(**options)
