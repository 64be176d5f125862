"""Provides graph-centric algorithms based on NetworkX [nx]_.

References
----------

.. [nx] Aric A. Hagberg, Daniel A. Schult and Pieter J. Swart, "Exploring network structure, dynamics, and function using
        NetworkX", in Proceedings of the 7th Python in Science Conference (SciPy2008), Gäel Varoquaux, Travis Vaught, and
        Jarrod Millman (Eds), (Pasadena, CA USA), pp. 11-15, Aug 2008
"""
from __future__ import annotations

import collections
import typing
from collections.abc import Callable, Collection, Generator, Hashable

import networkx as nx

NodeType = typing.TypeVar("NodeType", bound=Hashable)
"""Generic type to model the specific nodes contained in a NetworkX graph."""


def nx_leaves(graph: nx.Graph) -> Collection[NodeType]:
    """Determines all nodes of an undirected graph that have at most one neighbor.

    For a single-node graph, that node is the only leaf.
    """
    return [node for node in graph.nodes if graph.degree(node) <= 1]


def nx_bounded_paths(graph: nx.MultiDiGraph, start_node: NodeType, *, max_hops: int,
                     edge_filter: Callable[[NodeType, NodeType, dict], bool] | None = None
                     ) -> Generator[list[tuple[NodeType, NodeType, dict]], None, None]:
    """Enumerates all acyclic walks through a (multi-)graph that start at a specific node.

    The walks are explored in breadth-first manner using an explicit frontier. Each walk visits every node at most once and
    contains at most `max_hops` edges. This makes the traversal safe for graphs with cycles, such as self-referencing or
    mutually referencing foreign keys.

    Parameters
    ----------
    graph : nx.MultiDiGraph
        The graph to explore. Parallel edges are treated as distinct walks.
    start_node : NodeType
        The node where all walks start. The empty walk is not yielded.
    max_hops : int
        The maximum number of edges per walk
    edge_filter : Callable[[NodeType, NodeType, dict], bool] | None, optional
        An optional predicate that receives source node, target node and edge data. Only matching edges are traversed.

    Yields
    ------
    Generator[list[tuple[NodeType, NodeType, dict]], None, None]
        The walks as lists of *(source, target, edge data)* triples, shorter walks first.
    """
    frontier = collections.deque([([], {start_node})])
    while frontier:
        walk, visited = frontier.popleft()
        if len(walk) >= max_hops:
            continue
        current_node = walk[-1][1] if walk else start_node
        for _, target, edge_data in graph.out_edges(current_node, data=True):
            if target in visited:
                continue
            if edge_filter is not None and not edge_filter(current_node, target, edge_data):
                continue
            next_walk = walk + [(current_node, target, edge_data)]
            yield next_walk
            frontier.append((next_walk, visited | {target}))


def nx_path_order(graph: nx.Graph, start_node: NodeType) -> list[NodeType]:
    """Provides the nodes of a path-shaped graph in the order in which they are reached from one of its ends.

    Raises
    ------
    ValueError
        If the graph is not a simple path or the start node is not one of its ends.
    """
    if graph.number_of_nodes() > 1 and graph.degree(start_node) != 1:
        raise ValueError(f"Node {start_node} is not an end of the path")
    if any(degree > 2 for _, degree in graph.degree()):
        raise ValueError("Graph is not a path")
    order = [start_node]
    previous = None
    current = start_node
    while True:
        successors = [node for node in graph.neighbors(current) if node != previous]
        if not successors:
            break
        previous, current = current, successors[0]
        order.append(current)
    return order
