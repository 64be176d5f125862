"""The enumerator derives the candidate indexes that the search can choose from.

Candidates are generated per query: for each connected part of the query's path, the enumerator combines different choices of
hash fields, order fields and extra fields that could be useful to answer (a part of) the query. Afterwards, candidates that
only differ in their extra fields are combined, such that a single index can serve multiple queries.

Update statements contribute additional candidates: each entity that they touch receives its simple index, and the support
queries that are necessary to maintain the candidates are enumerated as well.

The enumeration is a pure function of the workload. Calling it multiple times produces the same candidates in the same order.
"""
from __future__ import annotations

from collections.abc import Iterable

from . import util
from .indexes import Index, InvalidIndexError
from .model import Entity, Field
from .qal import KeyPath, Query, QueryGraph
from .workloads import Workload


class IndexEnumerator:
    """Produces candidate indexes for the statements of a workload.

    Parameters
    ----------
    workload : Workload
        The workload to generate candidates for
    verbose : bool, optional
        Whether progress information should be logged, by default *False*
    """

    def __init__(self, workload: Workload, *, verbose: bool = False) -> None:
        self._workload = workload
        self._log = util.make_logger(verbose, prefix=util.timestamp)

    @property
    def workload(self) -> Workload:
        return self._workload

    def indexes_for_query(self, query: Query) -> list[Index]:
        """Produces all candidate indexes for a single query.

        For each connected sub-path of the query, each end of that sub-path can serve as the hash entity. The candidates
        combine the following choices:

        - hash fields: any non-empty subset of the equality predicates on the hash entity, or the ID of the hash entity
        - order fields: the remaining equality predicates, followed by optionally one range predicate and optionally the sort
          fields of the query. The IDs of all entities on the path are appended to make the entries unique.
        - extra fields: nothing, the selected fields, or all fields that the query needs (restricted to the sub-path)

        The materialized view of the query is always part of the result.

        Parameters
        ----------
        query : Query
            The query

        Returns
        -------
        list[Index]
            The distinct candidates in a deterministic order
        """
        self._log("Enumerating indexes for query", query.describe())
        candidates: list[Index] = []
        for graph in query.graph.subgraphs():
            for hash_entity in dict.fromkeys((graph.path.first, graph.path.last)):
                candidates.extend(self._indexes_for_graph(query, graph, hash_entity))
        candidates.append(query.materialize_view())
        return list(dict.fromkeys(candidates))

    def indexes_for_workload(self, additional_indexes: Iterable[Index] = ()) -> list[Index]:
        """Produces the candidate indexes for all statements of the workload.

        Parameters
        ----------
        additional_indexes : Iterable[Index], optional
            Indexes that should be part of the candidates in any case

        Returns
        -------
        list[Index]
            The distinct candidates in a deterministic order
        """
        indexes: list[Index] = list(additional_indexes)
        for query in self._workload.queries():
            indexes.extend(self.indexes_for_query(query))

        for update in self._workload.updates():
            indexes.extend(Index.simple(entity) for entity in update.key_path.entities)

        supporting = self._support_indexes(indexes)
        supporting += self._support_indexes(supporting)
        indexes.extend(supporting)

        indexes = list(dict.fromkeys(indexes))
        indexes.extend(self._combine_indexes(indexes))
        indexes = list(dict.fromkeys(indexes))

        self._log(f"Enumerated {len(indexes)} candidate indexes for workload {self._workload}")
        return indexes

    def _support_indexes(self, indexes: list[Index]) -> list[Index]:
        supporting: list[Index] = []
        for query in self._workload.support_queries(indexes):
            supporting.extend(self.indexes_for_query(query))
        return supporting

    def _combine_indexes(self, indexes: list[Index]) -> list[Index]:
        groups: dict[tuple, list[Index]] = {}
        for index in indexes:
            groups.setdefault((index.hash_fields, index.order_fields, index.path), []).append(index)

        combined: list[Index] = []
        for group in groups.values():
            extra_choices = list(dict.fromkeys(index.extra for index in group))
            template = group[0]
            for first_extra, second_extra in util.pairs(extra_choices):
                index = Index(template.hash_fields, template.order_fields, first_extra | second_extra, template.path)
                self._log("Enumerated combined index", repr(index))
                combined.append(index)
        return combined

    def _indexes_for_graph(self, query: Query, graph: QueryGraph, hash_entity: Entity) -> list[Index]:
        path = graph.path if graph.path.first == hash_entity else graph.path.reverse()
        entities = frozenset(path.entities)

        def on_path(fields: Iterable[Field]) -> tuple[Field, ...]:
            return tuple(field for field in fields if field.parent in entities)

        eq_fields = on_path(query.eq_fields)
        range_fields = on_path(query.range_fields)
        order_by = on_path(query.order)
        hash_choices = self._hash_choices(eq_fields, hash_entity)
        order_choices = list(dict.fromkeys([(), *((field,) for field in range_fields), order_by,
                                            *((field,) + order_by for field in range_fields)]))
        select = frozenset(on_path(query.select))
        needed = frozenset(on_path(query.all_fields))

        indexes: list[Index] = []
        for hash_fields in hash_choices:
            for order_choice in order_choices:
                order_fields = self._order_fields(path, hash_fields, eq_fields, order_choice)
                key_fields = frozenset(hash_fields) | frozenset(order_fields)
                for extra in dict.fromkeys([frozenset(), select - key_fields, needed - key_fields]):
                    if not order_fields and not extra:
                        continue
                    index = self._generate_index(hash_fields, order_fields, extra, path)
                    if index is not None:
                        indexes.append(index)
        return indexes

    def _hash_choices(self, eq_fields: tuple[Field, ...], hash_entity: Entity) -> list[tuple[Field, ...]]:
        entity_eq = [field for field in eq_fields if field.parent == hash_entity]
        choices = list(util.powerset(entity_eq, min_size=1))
        choices.append((hash_entity.id_field,))
        return list(dict.fromkeys(choices))

    def _order_fields(self, path: KeyPath, hash_fields: tuple[Field, ...], eq_fields: tuple[Field, ...],
                      order_choice: tuple[Field, ...]) -> list[Field]:
        order_fields = [field for field in eq_fields if field not in hash_fields]
        order_fields.extend(order_choice)
        order_fields.extend(entity.id_field for entity in path.entities)
        return [field for field in dict.fromkeys(order_fields) if field not in hash_fields]

    def _generate_index(self, hash_fields: Iterable[Field], order_fields: Iterable[Field], extra: Iterable[Field],
                        path: KeyPath) -> Index | None:
        try:
            return Index(hash_fields, order_fields, extra, path)
        except InvalidIndexError:
            # some combinations of fields do not form a valid index, they are simply skipped
            return None
