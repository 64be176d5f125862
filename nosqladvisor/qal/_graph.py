from __future__ import annotations

from collections.abc import Iterable

import networkx as nx

from ._core import KeyPath
from .. import util
from ..model import Entity, Field
from ..util import jsondict


class QueryGraph:
    """The query graph describes the join structure of a statement.

    Each entity that a statement touches becomes a node of the graph and each foreign key that is used to join two entities
    becomes an edge. Statements always follow a single `KeyPath`, hence their query graphs are connected and path-shaped.
    The underlying NetworkX graph is undirected: edges store the key that was used in path direction (attribute
    *foreign_key*), but two query graphs are equal if they connect the same entities through the same pair of keys,
    independent of the direction in which the keys were traversed.

    Parameters
    ----------
    path : KeyPath
        The route through the model that the statement follows. Its first entity is the root of the graph.
    """

    def __init__(self, path: KeyPath) -> None:
        self._path = path
        self._graph = nx.Graph()
        self._graph.add_nodes_from(path.entities)
        for source, key in zip(path.entities, path.keys[1:]):
            self._graph.add_edge(source, key.entity, foreign_key=key)
        self._edge_set = frozenset(frozenset({str(key), str(key.reverse)}) for key in path.keys[1:])
        self._hash_val = hash((frozenset(path.entities), self._edge_set))

    @property
    def path(self) -> KeyPath:
        """Get the key path that the graph was built from."""
        return self._path

    @property
    def graph(self) -> nx.Graph:
        """Get the underlying NetworkX graph. It should not be modified."""
        return self._graph

    @property
    def root(self) -> Entity:
        """Get the base entity of the statement."""
        return self._path.first

    @property
    def entities(self) -> tuple[Entity, ...]:
        """Get all entities of the graph in path order."""
        return self._path.entities

    @property
    def diameter(self) -> int:
        """Get the number of edges on the longest shortest path of the graph. A single-entity graph has diameter 0."""
        if self._graph.number_of_nodes() == 1:
            return 0
        return nx.diameter(self._graph)

    def is_connected(self) -> bool:
        return nx.is_connected(self._graph)

    def leaves(self) -> list[Entity]:
        """Provides all entities with at most one neighbor, in path order."""
        leaves = set(util.networkx.nx_leaves(self._graph))
        return [entity for entity in self.entities if entity in leaves]

    def subgraphs(self) -> list[QueryGraph]:
        """Provides all connected sub-graphs.

        Only edges of the graph itself are used, i.e. the sub-graphs never extend beyond the entities of the statement.

        Returns
        -------
        list[QueryGraph]
            The sub-graphs, ordered by their first entity along the path and then by their size. The graph itself is included.
        """
        return [QueryGraph(subpath) for subpath in self._path.subpaths()]

    def longest_path(self) -> KeyPath:
        """Determines the longest simple route through the graph, starting at its first leaf (in path order)."""
        leaves = self.leaves()
        best = [leaves[0]]
        for source in leaves:
            for target in leaves:
                if source == target:
                    continue
                route = nx.shortest_path(self._graph, source, target)
                if len(route) > len(best):
                    best = route
        start = self.entities.index(best[0])
        end = self.entities.index(best[-1])
        if start <= end:
            return self._path.subpath(start, end + 1)
        return self._path.subpath(end, start + 1).reverse()

    def join_order(self, eq_fields: Iterable[Field]) -> list[Entity]:
        """Determines the order in which a planner visits the entities.

        The traversal starts at the end of the path that carries an equality predicate, since only there the first index lookup
        can use the given values. The last entity of the path is preferred over the first one.

        Parameters
        ----------
        eq_fields : Iterable[Field]
            The fields with equality predicates

        Returns
        -------
        list[Entity]
            All entities of the graph, in traversal order

        Raises
        ------
        ValueError
            If neither end of the path carries an equality predicate
        """
        eq_entities = {field.parent for field in eq_fields}
        for start in (self._path.last, self._path.first):
            if start in eq_entities:
                return util.networkx.nx_path_order(self._graph, start)
        raise ValueError(f"No equality predicate on an end of path {self._path}")

    def split(self, entity: Entity) -> tuple[QueryGraph, QueryGraph]:
        """Splits the graph at one of its entities. Both parts contain the entity and lead away from it."""
        first, second = self._path.split(entity)
        return QueryGraph(first), QueryGraph(second)

    def __json__(self) -> jsondict:
        return {"entities": [entity.name for entity in self.entities], "path": self._path}

    def __len__(self) -> int:
        return len(self._path.entities)

    def __contains__(self, item: object) -> bool:
        return item in self._graph

    def __hash__(self) -> int:
        return self._hash_val

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, QueryGraph)
                and frozenset(self.entities) == frozenset(other.entities)
                and self._edge_set == other._edge_set)

    def __repr__(self) -> str:
        return f"QueryGraph({self._path!r})"

    def __str__(self) -> str:
        return " - ".join(entity.name for entity in self.entities)
