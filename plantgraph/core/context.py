"""
Node Contexts
=============

Read-only navigation handles bound to a node during rule and query
evaluation. A context exposes the node payload, the graph-level data and
relational navigation (parent, children, ancestor/descendant search)
without exposing the underlying storage.

Every navigation method is also available as a module-level function
taking the context as first argument, so predicates can be written either
way:

>>> ctx.parent(nsteps=2)
>>> parent(ctx, nsteps=2)

Search order
------------
`has_ancestor` walks up one parent at a time starting at the parent.
`has_descendant` performs a pre-order depth-first search starting at the
children, first child first. The first match in that order is returned,
even when a shallower match exists on a later branch.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional

from plantgraph.core.errors import NotFound

if TYPE_CHECKING:
    from plantgraph.core.graph import Graph
    from plantgraph.core.node import Node


Condition = Callable[["Context"], Any]


class Context:
    """A transient view of one node inside a graph."""

    __slots__ = ("_graph", "_node_id")

    def __init__(self, graph: "Graph", node_id: int):
        self._graph = graph
        self._node_id = node_id

    @property
    def graph(self) -> "Graph":
        return self._graph

    @property
    def node_id(self) -> int:
        return self._node_id

    @property
    def data(self) -> "Node":
        """Payload of the bound node."""
        return self._graph.payload(self._node_id)

    @property
    def graph_data(self) -> Any:
        """Graph-level data shared by all nodes."""
        return self._graph.data

    # ------------------------------------------------------------------
    # Immediate neighbourhood
    # ------------------------------------------------------------------

    def has_parent(self) -> bool:
        return self._graph.parent_id(self._node_id) is not None

    def has_children(self) -> bool:
        return bool(self._graph.children_ids(self._node_id))

    def is_root(self) -> bool:
        return not self.has_parent()

    def is_leaf(self) -> bool:
        return not self.has_children()

    def parent(self, nsteps: int = 1) -> "Context":
        """
        Return the ancestor `nsteps` levels up.

        Raises
        ------
        ValueError
            If nsteps is smaller than 1.
        NotFound
            If the walk goes past the root.
        """
        if nsteps < 1:
            raise ValueError(f"nsteps must be >= 1, got {nsteps}")
        node_id = self._node_id
        for step in range(nsteps):
            node_id = self._graph.parent_id(node_id)
            if node_id is None:
                raise NotFound(
                    f"Node {self._node_id} has only {step} ancestors, "
                    f"cannot go up {nsteps} steps"
                )
        return Context(self._graph, node_id)

    def children(self) -> list["Context"]:
        """Child contexts in attachment order."""
        return [
            Context(self._graph, child)
            for child in self._graph.children_ids(self._node_id)
        ]

    # ------------------------------------------------------------------
    # Relational search
    # ------------------------------------------------------------------

    def has_ancestor(
        self,
        condition: Condition = lambda ctx: True,
        max_level: Optional[int] = None,
    ) -> tuple[bool, int]:
        """
        Walk upward until `condition` holds.

        Returns
        -------
        tuple[bool, int]
            Whether a matching ancestor exists and the number of levels
            climbed (to the match, or before reaching the root/max_level).
        """
        found = self._find_ancestor(condition, max_level)
        return found[0] is not None, found[1]

    def has_descendant(
        self,
        condition: Condition = lambda ctx: True,
        max_level: Optional[int] = None,
    ) -> tuple[bool, int]:
        """
        Depth-first search (first child first) for a descendant.

        Returns
        -------
        tuple[bool, int]
            Whether a matching descendant exists and its depth below this
            node; when nothing matches, the deepest level explored.
        """
        found = self._find_descendant(condition, max_level)
        return found[0] is not None, found[1]

    def ancestor(
        self,
        condition: Condition = lambda ctx: True,
        max_level: Optional[int] = None,
    ) -> "Context":
        """Return the closest ancestor satisfying `condition` or raise NotFound."""
        match, steps = self._find_ancestor(condition, max_level)
        if match is None:
            raise NotFound(
                f"No matching ancestor of node {self._node_id} within {steps} levels"
            )
        return match

    def descendant(
        self,
        condition: Condition = lambda ctx: True,
        max_level: Optional[int] = None,
    ) -> "Context":
        """Return the first descendant (depth-first) satisfying `condition` or raise NotFound."""
        match, steps = self._find_descendant(condition, max_level)
        if match is None:
            raise NotFound(
                f"No matching descendant of node {self._node_id} within {steps} levels"
            )
        return match

    def _find_ancestor(
        self, condition: Condition, max_level: Optional[int]
    ) -> tuple[Optional["Context"], int]:
        steps = 0
        node_id = self._node_id
        while max_level is None or steps < max_level:
            node_id = self._graph.parent_id(node_id)
            if node_id is None:
                break
            steps += 1
            candidate = Context(self._graph, node_id)
            if condition(candidate):
                return candidate, steps
        return None, steps

    def _find_descendant(
        self, condition: Condition, max_level: Optional[int]
    ) -> tuple[Optional["Context"], int]:
        deepest = 0
        # Reversed so that the first child is popped first.
        stack = [(child, 1) for child in reversed(self._graph.children_ids(self._node_id))]
        while stack:
            node_id, depth = stack.pop()
            if max_level is not None and depth > max_level:
                continue
            deepest = max(deepest, depth)
            candidate = Context(self._graph, node_id)
            if condition(candidate):
                return candidate, depth
            stack.extend(
                (child, depth + 1)
                for child in reversed(self._graph.children_ids(node_id))
            )
        return None, deepest

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Context):
            return NotImplemented
        return self._graph is other._graph and self._node_id == other._node_id

    def __hash__(self) -> int:
        return hash((id(self._graph), self._node_id))

    def __repr__(self) -> str:
        return f"Context(node={self._node_id}, data={self.data!r})"


def data(ctx: Context) -> "Node":
    return ctx.data


def graph_data(ctx: Context) -> Any:
    return ctx.graph_data


def has_parent(ctx: Context) -> bool:
    return ctx.has_parent()


def has_children(ctx: Context) -> bool:
    return ctx.has_children()


def is_root(ctx: Context) -> bool:
    return ctx.is_root()


def is_leaf(ctx: Context) -> bool:
    return ctx.is_leaf()


def parent(ctx: Context, nsteps: int = 1) -> Context:
    return ctx.parent(nsteps)


def children(ctx: Context) -> list[Context]:
    return ctx.children()


def has_ancestor(
    ctx: Context,
    condition: Condition = lambda c: True,
    max_level: Optional[int] = None,
) -> tuple[bool, int]:
    return ctx.has_ancestor(condition, max_level)


def has_descendant(
    ctx: Context,
    condition: Condition = lambda c: True,
    max_level: Optional[int] = None,
) -> tuple[bool, int]:
    return ctx.has_descendant(condition, max_level)


def ancestor(
    ctx: Context,
    condition: Condition = lambda c: True,
    max_level: Optional[int] = None,
) -> Context:
    return ctx.ancestor(condition, max_level)


def descendant(
    ctx: Context,
    condition: Condition = lambda c: True,
    max_level: Optional[int] = None,
) -> Context:
    return ctx.descendant(condition, max_level)
