"""
Traversal Engine
================

Visit every node exactly once and hand its payload to a visitor.

- traverse: store order, no ordering guarantee (fastest)
- traverse_dfs: pre-order depth-first, first child first
- traverse_bfs: level order, children in attachment order

Visitors must not change topology; doing so raises RuntimeError.
"""

from collections import deque
from typing import TYPE_CHECKING, Any, Callable

from plantgraph.core.node import Node

if TYPE_CHECKING:
    from plantgraph.core.graph import Graph


Visitor = Callable[[Node], Any]


def _visit(graph: "Graph", order, fun: Visitor) -> int:
    version = graph.version
    visited = 0
    for node_id in order:
        fun(graph.payload(node_id))
        visited += 1
        if graph.version != version:
            raise RuntimeError("Graph topology changed during traversal")
    return visited


def _dfs_order(graph: "Graph"):
    stack = [graph.root_id]
    while stack:
        node_id = stack.pop()
        yield node_id
        stack.extend(reversed(graph.children_ids(node_id)))


def _bfs_order(graph: "Graph"):
    queue = deque([graph.root_id])
    while queue:
        node_id = queue.popleft()
        yield node_id
        queue.extend(graph.children_ids(node_id))


def traverse(graph: "Graph", fun: Visitor) -> int:
    """Visit nodes in store order. Returns the number of visits."""
    return _visit(graph, graph.node_ids(), fun)


def traverse_dfs(graph: "Graph", fun: Visitor) -> int:
    """Visit nodes depth-first, parents before children. Returns the number of visits."""
    return _visit(graph, _dfs_order(graph), fun)


def traverse_bfs(graph: "Graph", fun: Visitor) -> int:
    """Visit nodes level by level. Returns the number of visits."""
    return _visit(graph, _bfs_order(graph), fun)
