"""
Query Engine
============

Queries select nodes by type and an optional relational condition without
touching topology. The returned payloads can be modified in place, which is
how growth that does not change topology (elongation, ageing) is modelled.

Ordering
--------
Results come back in store order. Store order is NOT creation order nor
traversal order; use `traverse_dfs`/`traverse_bfs` when order matters.
Conditions may mutate payloads or graph data; such mutations happen in
store order as well.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional

from plantgraph.core.context import Context
from plantgraph.core.node import Node

if TYPE_CHECKING:
    from plantgraph.core.graph import Graph


class Query:
    """
    A rule-like matcher without replacement.

    Example
    -------
    >>> get_internodes = Query(Internode)
    >>> for internode in apply(tree, get_internodes):
    ...     internode.length *= 1.0 + tree.data.growth
    """

    __slots__ = ("node_type", "condition")

    def __init__(
        self,
        node_type: type[Node],
        *,
        condition: Optional[Callable[[Context], Any]] = None,
    ):
        if not isinstance(node_type, type) or not issubclass(node_type, Node):
            raise TypeError(f"node_type must be a Node subclass, got {node_type!r}")
        if condition is not None and not callable(condition):
            raise TypeError("condition must be callable")
        self.node_type = node_type
        self.condition = condition

    def matches(self, ctx: Context) -> bool:
        if not isinstance(ctx.data, self.node_type):
            return False
        return self.condition is None or bool(self.condition(ctx))

    def __repr__(self) -> str:
        return f"Query(type={self.node_type.__name__}, conditional={self.condition is not None})"


def apply(graph: "Graph", query: Query) -> list[Node]:
    """
    Return the payloads of all nodes matching `query`, in store order.

    Raises
    ------
    RuntimeError
        If a condition changes the topology of the graph.
    """
    return [ctx.data for ctx in select(graph, query)]


def select(graph: "Graph", query: Query) -> list[Context]:
    """Like `apply`, but return contexts so callers can keep navigating."""
    version = graph.version
    selected: list[Context] = []
    for node_id in graph.node_ids():
        ctx = Context(graph, node_id)
        if query.matches(ctx):
            selected.append(ctx)
        if graph.version != version:
            raise RuntimeError("Graph topology changed while applying a query")
    return selected
