"""The search selects the indexes that should be materialized for a workload.

The central entry point is `Search.search_overlap`, which picks a subset of the candidate indexes (see `IndexEnumerator`)
such that every statement of the workload can be answered, the combined size of the indexes stays within a storage budget
and the weighted cost of the workload is as small as possible. The search is a deterministic local search heuristic, its
behavior can be configured through `SearchSettings`.

The outcome of the search is captured in `SearchResults`, which provide the selected indexes along with the plans of all
statements.
"""

from ._results import SearchResults
from ._search import CapacityError, Search, SearchSettings

__all__ = ["CapacityError", "Search", "SearchResults", "SearchSettings"]
