"""Contains the statement abstraction that the advisor reasons about.

The advisor does not parse statements from text. Instead, some front end constructs them directly from model fields:

>>> path = KeyPath.build(regions, "users")
>>> query = Query([regions["name"]], path, [Condition(users["id"], "=")], label="region-of-user")

All statements follow a `KeyPath` through the model, i.e. a chain of foreign keys that starts at the statement's base entity.
The path induces the `QueryGraph` of the statement, which the index enumerator and the planner use to decide which entities
an index can span.

Four kinds of statements are supported: `Query` instances read data, while `Insert`, `Update` and `Delete` modify data. Each
modification has to be applied to all indexes that store the modified data. To do so, a modification might have to fetch
additional values first. These lookups are modelled as `SupportQuery` instances.

All statements are immutable data objects with content-based equality.
"""

from ._core import Condition, KeyPath, Operator, RangeOperators
from ._graph import QueryGraph
from ._qal import (
    Delete,
    Insert,
    InvalidStatementError,
    Query,
    Statement,
    SupportQuery,
    Update,
    UpdateStatement,
)

__all__ = [
    "Condition",
    "KeyPath",
    "Operator",
    "RangeOperators",
    "QueryGraph",
    "Delete",
    "Insert",
    "InvalidStatementError",
    "Query",
    "Statement",
    "SupportQuery",
    "Update",
    "UpdateStatement",
]
