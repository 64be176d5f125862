from __future__ import annotations

import concurrent.futures
import dataclasses
import math
import warnings
from collections.abc import Callable, Iterable, Sequence
from typing import Optional, TypeVar

from ._results import SearchResults
from .. import util
from ..cost import Cost, CostModel
from ..enumerator import IndexEnumerator
from ..indexes import Index, InvalidIndexError, total_size
from ..plans import NoPlanError, QueryPlan, QueryPlanner, UpdatePlan, UpdatePlanner
from ..qal import Query, Statement, SupportQuery, UpdateStatement
from ..workloads import Workload


T = TypeVar("T")
R = TypeVar("R")


class CapacityError(RuntimeError):
    """Indicates that no selection of indexes answers all statements of a workload within the storage budget.

    Parameters
    ----------
    max_space : float
        The storage budget that could not be met
    statement : Optional[Statement], optional
        A statement that prevents the selection from shrinking any further
    msg : str, optional
        Additional information
    """

    def __init__(self, max_space: float, statement: Optional[Statement] = None, msg: str = "") -> None:
        description = f"Cannot answer the workload within max_space={max_space}"
        if statement is not None:
            description += f", statement '{statement.describe()}' requires more space"
        super().__init__(f"{description}: {msg}" if msg else description)
        self.max_space = max_space
        self.statement = statement


@dataclasses.dataclass(frozen=True)
class SearchSettings:
    """Configures the index selection search.

    Attributes
    ----------
    max_space : float
        The storage budget, i.e. the maximum combined size of all selected indexes. Unlimited by default.
    merge_threshold : float
        The relative cost increase that a merge of two indexes may cause and still be accepted. For example, a threshold of
        0.1 accepts merges that make the workload at most 10% more expensive. Defaults to 0, i.e. merges must not increase
        the cost.
    max_workers : Optional[int]
        The number of threads that evaluate alternatives in parallel. Defaults to the default of
        `concurrent.futures.ThreadPoolExecutor`.
    verbose : bool
        Whether progress information should be logged
    """
    max_space: float = math.inf
    merge_threshold: float = 0.0
    max_workers: Optional[int] = None
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.max_space < 0:
            raise ValueError(f"max_space must not be negative: {self.max_space}")
        if self.merge_threshold < 0:
            raise ValueError(f"merge_threshold must not be negative: {self.merge_threshold}")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive: {self.max_workers}")


@dataclasses.dataclass(frozen=True)
class _Configuration:
    """A feasible selection of indexes, together with the plans of all statements on these indexes."""
    indexes: tuple[Index, ...]
    query_plans: dict[Query, QueryPlan]
    update_plans: dict[UpdateStatement, list[UpdatePlan]]
    cost: Cost
    size: int

    def used_indexes(self) -> set[Index]:
        used = set()
        for plan in self.query_plans.values():
            used.update(plan.indexes)
        for plans in self.update_plans.values():
            for update_plan in plans:
                for support_plan in update_plan.query_plans:
                    used.update(support_plan.indexes)
        return used


class Search:
    """The search selects the indexes that answer a workload at minimum cost within a storage budget.

    The search is a local search that proceeds in multiple phases:

    1. *Seeding*: each query is planned against all candidates and the indexes of its cheapest plan are selected. Afterwards,
       the support queries of all update statements are closed over the selection, adding indexes as necessary.
    2. *Improvement*: pairs of selected indexes that can be merged (see `Index.can_merge`) are replaced by their merged index
       if this does not make the workload more expensive (up to the `merge_threshold`) and either keeps the selection within
       the budget or reduces its size. If no merge is accepted, removing each selected index is evaluated instead and the
       removal that lowers the workload cost the most is applied. This trades query cost against the cost of maintaining
       indexes for update statements. In each round, all moves are evaluated in parallel and the best one is applied.
       Rounds are repeated until no move is accepted anymore.
    3. *Budget repair*: as long as the selection exceeds the budget, the index whose removal causes the smallest cost
       increase is removed. Statements that relied on the removed index are re-planned using smaller candidates. If no
       index can be removed without making a statement unanswerable, the search fails with a `CapacityError`.

    Throughout the search, indexes that are not used by any plan are pruned from the selection. The selection is always
    feasible, i.e. every statement can be answered by the selected indexes.

    If the candidates are enumerated by the search itself, statements that cannot be answered by the candidates fall back to
    their materialized view. This happens for support queries of merged indexes. Explicitly given candidates are never
    extended in this way. Instead, the search fails with a `NoPlanError`.

    Parameters
    ----------
    workload : Workload
        The workload to optimize the indexes for
    cost_model : CostModel
        The cost model to estimate plans with
    settings : Optional[SearchSettings], optional
        The configuration of the search. Uses the default settings if omitted.
    """

    def __init__(self, workload: Workload, cost_model: CostModel, settings: Optional[SearchSettings] = None) -> None:
        self._workload = workload
        self._cost_model = cost_model
        self._settings = settings if settings is not None else SearchSettings()
        self._log = util.make_logger(self._settings.verbose, prefix=util.timestamp)

    @property
    def workload(self) -> Workload:
        return self._workload

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @property
    def settings(self) -> SearchSettings:
        return self._settings

    def search_overlap(self, candidates: Optional[Iterable[Index]] = None, *,
                       max_space: Optional[float] = None) -> SearchResults:
        """Selects the indexes for the workload.

        Parameters
        ----------
        candidates : Optional[Iterable[Index]], optional
            The indexes to choose from. If omitted, the candidates are enumerated using the `IndexEnumerator`.
        max_space : Optional[float], optional
            The storage budget. Overwrites the budget of the settings if given.

        Returns
        -------
        SearchResults
            The selected indexes and the plans of all statements

        Raises
        ------
        CapacityError
            If the workload cannot be answered within the storage budget
        NoPlanError
            If a statement (or a support query of an update) cannot be answered by the given candidates at all
        """
        max_space = self._settings.max_space if max_space is None else max_space
        if max_space < 0:
            raise ValueError(f"max_space must not be negative: {max_space}")
        views = candidates is None
        if candidates is None:
            candidates = IndexEnumerator(self._workload, verbose=self._settings.verbose).indexes_for_workload()
        candidates = list(dict.fromkeys(candidates))
        self._log(f"Starting search with {len(candidates)} candidates and max_space={max_space}")

        current = self._seed(candidates, views=views)
        self._log(f"Seed selection: {len(current.indexes)} indexes, cost={current.cost:g}, size={current.size}")

        current = self._improve(current, candidates, max_space=max_space, views=views)
        current = self._repair_budget(current, candidates, max_space=max_space, views=views)
        self._log(f"Final selection: {len(current.indexes)} indexes, cost={current.cost:g}, size={current.size}")

        results = SearchResults(self._workload, self._cost_model, current.indexes, current.query_plans,
                                current.update_plans, max_space=max_space)
        results.validate()
        return results

    def _seed(self, candidates: list[Index], *, views: bool) -> _Configuration:
        selection: list[Index] = []
        for query in self._workload.queries():
            plan = self._try_plan(query, candidates)
            if plan is not None:
                plan_indexes = plan.indexes
            elif views:
                self._log("No candidate plan for query", query.describe(), "- using its materialized view")
                plan_indexes = [query.materialize_view()]
            else:
                raise NoPlanError(query, f"none of the {len(candidates)} candidates lead to an answer")
            selection.extend(index for index in plan_indexes if index not in selection)

        selection = self._close_support(selection, candidates, views=views)
        configuration = self._evaluate(selection)
        if configuration is None:
            raise util.LogicError("Seed selection is not feasible")
        return configuration

    def _close_support(self, selection: Sequence[Index], candidates: Sequence[Index], *, views: bool) -> list[Index]:
        """Adds indexes to the selection until the support queries of all updates can be answered.

        Raises a `NoPlanError` for the update statement if one of its support queries cannot be answered.
        """
        selection = list(selection)
        changed = True
        while changed:
            changed = False
            for update in self._workload.updates():
                for index in list(selection):
                    if not update.modifies_index(index):
                        continue
                    for support_query in update.support_queries(index):
                        new_indexes = self._support_indexes(support_query, selection, candidates, views=views)
                        new_indexes = [index for index in new_indexes if index not in selection]
                        if new_indexes:
                            selection.extend(new_indexes)
                            changed = True
        return selection

    def _support_indexes(self, query: SupportQuery, selection: list[Index], candidates: Sequence[Index], *,
                         views: bool) -> list[Index]:
        if self._try_plan(query, selection) is not None:
            return []
        plan = self._try_plan(query, selection + list(candidates))
        if plan is not None:
            return plan.indexes
        if views:
            return [query.materialize_view()]
        raise NoPlanError(query.statement, f"support query '{query}' for index {query.index.key} cannot be answered")

    def _try_plan(self, query: Query, indexes: Iterable[Index]) -> Optional[QueryPlan]:
        try:
            return QueryPlanner(indexes, self._cost_model).min_plan(query)
        except NoPlanError:
            return None

    def _evaluate(self, selection: Iterable[Index]) -> Optional[_Configuration]:
        """Plans all statements on a selection of indexes and prunes unused indexes.

        Returns *None* if some statement cannot be answered by the selection.
        """
        indexes = tuple(dict.fromkeys(selection))
        while True:
            try:
                configuration = self._plan_all(indexes)
            except NoPlanError:
                return None
            used = configuration.used_indexes()
            if all(index in used for index in indexes):
                return configuration
            indexes = tuple(index for index in indexes if index in used)

    def _plan_all(self, indexes: tuple[Index, ...]) -> _Configuration:
        query_planner = QueryPlanner(indexes, self._cost_model)
        update_planner = UpdatePlanner(indexes, self._cost_model)
        query_plans = {query: query_planner.min_plan(query) for query in self._workload.queries()}
        update_plans = {update: update_planner.plans_for_update(update, indexes) for update in self._workload.updates()}

        cost = sum(self._workload.weight(query) * plan.cost for query, plan in query_plans.items())
        cost += sum(self._workload.weight(update) * sum(plan.cost for plan in plans)
                    for update, plans in update_plans.items())
        return _Configuration(indexes, query_plans, update_plans, cost, total_size(indexes))

    def _improve(self, current: _Configuration, candidates: list[Index], *, max_space: float,
                 views: bool) -> _Configuration:
        seen = {frozenset(current.indexes)}
        round_number = 0
        while True:
            round_number += 1
            improved = self._merge_round(current, candidates, seen, max_space=max_space, views=views)
            move = "Merge"
            if improved is None:
                improved = self._removal_round(current, candidates, seen, max_space=max_space, views=views)
                move = "Removal"
            if improved is None:
                break

            current = improved
            seen.add(frozenset(current.indexes))
            self._log(f"{move} round {round_number}: cost={current.cost:g}, size={current.size}")
        return current

    def _merge_round(self, current: _Configuration, candidates: list[Index], seen: set[frozenset[Index]], *,
                     max_space: float, views: bool) -> Optional[_Configuration]:
        moves = [(first, second) for first, second in util.pairs(current.indexes) if first.can_merge(second)]
        if not moves:
            return None

        outcomes = self._parallel_map(lambda move: self._try_merge(current, *move, candidates, views=views), moves)
        accepted = [outcome for outcome in outcomes
                    if outcome is not None and frozenset(outcome.indexes) not in seen
                    and self._accept_merge(current, outcome, max_space=max_space)]
        if not accepted:
            return None
        # min() keeps the first of several equally good moves
        return min(accepted, key=lambda configuration: (configuration.cost, configuration.size))

    def _try_merge(self, current: _Configuration, first: Index, second: Index, candidates: list[Index], *,
                   views: bool) -> Optional[_Configuration]:
        try:
            merged = first.merge(second)
        except InvalidIndexError as e:
            warnings.warn(f"Could not merge indexes {first.key} and {second.key}: {e}")
            return None
        selection = [merged if index == first else index for index in current.indexes if index != second]
        try:
            selection = self._close_support(selection, candidates, views=views)
        except NoPlanError:
            return None
        return self._evaluate(selection)

    def _accept_merge(self, current: _Configuration, outcome: _Configuration, *, max_space: float) -> bool:
        if outcome.cost > (1 + self._settings.merge_threshold) * current.cost:
            return False
        return outcome.size <= max_space or outcome.size < current.size

    def _removal_round(self, current: _Configuration, candidates: list[Index], seen: set[frozenset[Index]], *,
                       max_space: float, views: bool) -> Optional[_Configuration]:
        outcomes = self._parallel_map(lambda index: self._try_removal(current, index, candidates, views=views),
                                      current.indexes)
        accepted = [outcome for outcome in outcomes
                    if isinstance(outcome, _Configuration) and frozenset(outcome.indexes) not in seen
                    and outcome.cost < current.cost
                    and (outcome.size <= max_space or outcome.size <= current.size)]
        if not accepted:
            return None
        # min() keeps the first of several equally good moves
        return min(accepted, key=lambda configuration: (configuration.cost, configuration.size))

    def _repair_budget(self, current: _Configuration, candidates: list[Index], *, max_space: float,
                       views: bool) -> _Configuration:
        while current.size > max_space:
            outcomes = self._parallel_map(lambda index: self._try_removal(current, index, candidates, views=views),
                                          current.indexes)

            feasible: list[_Configuration] = []
            blocking: Optional[Statement] = None
            for outcome in outcomes:
                if isinstance(outcome, Statement):
                    if blocking is None:
                        blocking = outcome
                elif outcome.size < current.size:
                    feasible.append(outcome)

            if not feasible:
                raise CapacityError(max_space, blocking if blocking is not None else self._largest_user(current),
                                    f"smallest feasible selection has size {current.size}")

            # min() keeps the first of several equally good moves
            current = min(feasible, key=lambda configuration: (configuration.cost - current.cost, configuration.size))
            self._log(f"Removed index to meet the budget: cost={current.cost:g}, size={current.size}")
        return current

    def _try_removal(self, current: _Configuration, removed: Index, candidates: list[Index], *,
                     views: bool) -> _Configuration | Statement:
        """Tries to remove an index from the selection.

        Statements that used the index are re-planned with candidates that are smaller than the removed index. If this fails,
        the statement that could not be answered is returned instead of a new configuration.
        """
        smaller = [candidate for candidate in candidates if candidate.size < removed.size]
        selection = [index for index in current.indexes if index != removed]
        for query in self._workload.queries():
            if removed not in current.query_plans[query].indexes:
                continue
            try:
                plan = QueryPlanner(selection + smaller, self._cost_model).min_plan(query)
            except NoPlanError:
                return query
            selection.extend(index for index in plan.indexes if index not in selection)

        try:
            selection = self._close_support(selection, smaller, views=views)
        except NoPlanError as e:
            return e.statement
        configuration = self._evaluate(selection)
        if configuration is None:
            return self._unanswerable_statement(selection)
        return configuration

    def _unanswerable_statement(self, selection: list[Index]) -> Statement:
        try:
            self._plan_all(tuple(selection))
        except NoPlanError as e:
            statement = e.statement
            return statement.statement if isinstance(statement, SupportQuery) else statement
        raise util.LogicError("Selection was expected to be infeasible")

    def _largest_user(self, current: _Configuration) -> Optional[Statement]:
        if not current.indexes:
            return None
        largest = max(current.indexes, key=lambda index: index.size)
        for query, plan in current.query_plans.items():
            if largest in plan.indexes:
                return query
        for update, plans in current.update_plans.items():
            if any(plan.index == largest for plan in plans):
                return update
        return None

    def _parallel_map(self, func: Callable[[T], R], items: Iterable[T]) -> list[R]:
        with concurrent.futures.ThreadPoolExecutor(max_workers=self._settings.max_workers) as pool:
            return list(pool.map(func, items))
