"""
Rule Engine
===========

Rewriting rules and the `rewrite` step that derives the next generation
of a graph.

A rule couples a node type with two callables:

- lhs(ctx) decides whether the node matches. With `captures=True` it
  returns `(matched, captured)` where `captured` is a sequence of extra
  contexts (typically ancestors or descendants) forwarded to the rhs.
- rhs(ctx, *captured) builds the replacement: a Node, a Fragment, or
  None to delete the node.

Rewrite semantics
-----------------
1. Every node present at the start of the call is tested against the
   rules registered for its type, in registration order. The first
   matching rule wins; unmatched nodes are left alone.
2. All right-hand sides are evaluated before any replacement is spliced,
   so each rule observes the same snapshot of the graph.
3. Replacements are spliced in store order. The matched node's former
   children are re-attached below the replacement's insertion point.
4. If anything raises, the graph is rolled back to its state before the
   call and the exception propagates.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from plantgraph.core.context import Context
from plantgraph.core.node import Fragment, Node

if TYPE_CHECKING:
    from plantgraph.core.graph import Graph


class Rule:
    """
    A rewriting rule for one node type.

    Example
    -------
    >>> def transfer(ctx):
    ...     if ctx.has_parent():
    ...         return True, (ctx.parent(),)
    ...     return False, ()
    >>> Rule(Cell, lhs=transfer, rhs=lambda ctx, father: Cell(state=father.data.state),
    ...      captures=True)
    """

    __slots__ = ("node_type", "lhs", "rhs", "captures", "name")

    def __init__(
        self,
        node_type: type[Node],
        *,
        rhs: Callable[..., Any],
        lhs: Optional[Callable[[Context], Any]] = None,
        captures: bool = False,
        name: Optional[str] = None,
    ):
        """
        Parameters
        ----------
        node_type : type
            Node variant this rule applies to (subclasses included).
        rhs : callable
            Replacement generator, called as rhs(ctx, *captured).
        lhs : callable, optional
            Match predicate. Defaults to always matching.
        captures : bool
            Whether lhs returns `(matched, captured)`.
        name : str, optional
            Label used in rewrite reports. Defaults to the node type name.
            Reports count applications per name, so give rules that share
            a node type distinct names to keep their counts apart.

        Raises
        ------
        TypeError
            If node_type is not a Node subclass, or a callable is missing.
        """
        if not isinstance(node_type, type) or not issubclass(node_type, Node):
            raise TypeError(f"node_type must be a Node subclass, got {node_type!r}")
        if not callable(rhs):
            raise TypeError("rhs must be callable")
        if lhs is not None and not callable(lhs):
            raise TypeError("lhs must be callable")
        if captures and lhs is None:
            raise TypeError("A rule with captures=True needs an lhs that returns the captures")

        self.node_type = node_type
        self.lhs = lhs
        self.rhs = rhs
        self.captures = captures
        self.name = name or node_type.__name__

    def match(self, ctx: Context) -> tuple[bool, tuple[Context, ...]]:
        """Evaluate the left-hand side against a node."""
        if self.lhs is None:
            return True, ()
        result = self.lhs(ctx)
        if not self.captures:
            return bool(result), ()
        if not isinstance(result, tuple) or len(result) != 2:
            raise TypeError(
                f"Rule '{self.name}' declares captures, so lhs must return "
                f"(matched, captured); got {result!r}"
            )
        matched, captured = result
        return bool(matched), tuple(captured) if matched else ()

    def produce(self, ctx: Context, captured: Sequence[Context] = ()) -> Fragment:
        """Evaluate the right-hand side and coerce it into a fragment."""
        replacement = self.rhs(ctx, *captured)
        try:
            return Fragment.of(replacement)
        except TypeError:
            raise TypeError(
                f"Rule '{self.name}' rhs must return a Node, a Fragment or None, "
                f"got {type(replacement).__name__}"
            ) from None

    def __repr__(self) -> str:
        return (
            f"Rule(name={self.name}, type={self.node_type.__name__}, "
            f"captures={self.captures})"
        )


@dataclass
class RewriteReport:
    """
    Summary of one rewrite generation.

    `applied` maps rule names to application counts; unnamed rules for the
    same node type share a name and therefore a count.
    """

    generation: int
    nodes_before: int
    nodes_after: int
    applied: dict[str, int] = field(default_factory=dict)

    @property
    def replaced(self) -> int:
        """Number of nodes replaced in this generation."""
        return sum(self.applied.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert the report to a JSON-serializable dictionary."""
        return {
            "generation": self.generation,
            "nodes_before": self.nodes_before,
            "nodes_after": self.nodes_after,
            "replaced": self.replaced,
            "applied": dict(self.applied),
        }


def rewrite(graph: "Graph") -> RewriteReport:
    """
    Apply the graph's rules once to every eligible node.

    Parameters
    ----------
    graph : Graph
        Graph to rewrite in place.

    Returns
    -------
    RewriteReport
        Generation number and per-rule application counts.

    Raises
    ------
    StructuralViolation, NotFound, or any exception raised by a rule
        The graph is left exactly as it was before the call.
    """
    nodes_before = len(graph)
    report = RewriteReport(
        generation=graph.generation + 1,
        nodes_before=nodes_before,
        nodes_after=nodes_before,
    )

    checkpoint = graph._checkpoint()
    try:
        matches: list[tuple[int, Rule, tuple[Context, ...]]] = []
        for node_id in graph.node_ids():
            ctx = Context(graph, node_id)
            for rule in graph.rules_for(type(ctx.data)):
                matched, captured = rule.match(ctx)
                if matched:
                    matches.append((node_id, rule, captured))
                    break

        replacements = [
            (node_id, rule, rule.produce(Context(graph, node_id), captured))
            for node_id, rule, captured in matches
        ]

        for node_id, rule, fragment in replacements:
            graph._replace(node_id, fragment)
            report.applied[rule.name] = report.applied.get(rule.name, 0) + 1
    except Exception:
        graph._restore(checkpoint)
        raise

    graph.generation += 1
    report.nodes_after = len(graph)
    return report
