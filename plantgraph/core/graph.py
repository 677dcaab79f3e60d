"""
Graph Store
===========

The node store behind every rewrite, query and traversal.

Key Design Principles:
1. Nodes live in an arena keyed by integer id; parent/children are ids
2. Payloads never carry their id; the graph maps payload identity to ids
3. Topology only changes through rewriting (see `rules.rewrite`) or `prune`
4. Rules are dispatched through a per-type table resolved once per
   concrete payload type
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional

from plantgraph.core.context import Context
from plantgraph.core.errors import NotFound, StructuralViolation
from plantgraph.core.node import Fragment, Node
from plantgraph.core.rules import Rule


@dataclass
class NodeRecord:
    """Arena entry for one node."""

    node_id: int
    payload: Node
    parent: Optional[int] = None
    children: list[int] = field(default_factory=list)


class Graph:
    """
    A rooted tree of typed payloads plus shared graph-level data and rules.

    Example
    -------
    >>> graph = Graph(axiom=A(), rules=(Rule(A, rhs=lambda ctx: A() + B()),))
    >>> report = rewrite(graph)
    >>> len(graph)
    2

    Notes
    -----
    A graph is not reentrant. Independent graphs may be processed from
    different threads (see `plantgraph.platform.forest`), but calls on the
    same graph must be serialized by the caller.
    """

    def __init__(
        self,
        axiom: Node | Fragment,
        rules: Iterable[Rule] | Rule = (),
        data: Any = None,
    ):
        """
        Materialize an axiom into a new graph.

        Parameters
        ----------
        axiom : Node or Fragment
            Initial fragment; must contain at least one node. Its payloads
            are copied, so one axiom can seed many independent graphs.
            `0` (what `sum()` returns for no nodes) counts as empty.
        rules : Rule or iterable of Rule
            Rewriting rules, tried in registration order.
        data : any
            Graph-level data shared with every rule, query and traversal.

        Raises
        ------
        ValueError
            If the axiom is empty.
        """
        if isinstance(axiom, int) and not isinstance(axiom, bool) and axiom == 0:
            axiom = None
        fragment = Fragment.of(axiom)
        if fragment.is_empty:
            raise ValueError("Axiom must contain at least one node")

        self._nodes: dict[int, NodeRecord] = {}
        self._ids_by_payload: dict[int, int] = {}
        self._next_id = 0
        self._version = 0
        self._root_id, _ = self._materialize(fragment)

        self.data = data
        self.generation = 0

        self._rules: list[Rule] = []
        self._dispatch: dict[type, tuple[Rule, ...]] = {}
        if isinstance(rules, Rule):
            rules = (rules,)
        for rule in rules:
            self.add_rule(rule)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    @property
    def root_id(self) -> int:
        return self._root_id

    @property
    def version(self) -> int:
        """Counter bumped on every topology change."""
        return self._version

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules)

    def node_ids(self) -> list[int]:
        """Ids of all nodes in store order (not creation or traversal order)."""
        return list(self._nodes)

    def payloads(self) -> Iterator[Node]:
        """Iterate over payloads in store order."""
        for record in self._nodes.values():
            yield record.payload

    def payload(self, node_id: int) -> Node:
        return self._record(node_id).payload

    def parent_id(self, node_id: int) -> Optional[int]:
        return self._record(node_id).parent

    def children_ids(self, node_id: int) -> list[int]:
        return list(self._record(node_id).children)

    def node_id_of(self, payload: Node) -> int:
        """
        Return the id of the node that owns `payload`.

        Raises
        ------
        NotFound
            If the payload is not stored in this graph.
        """
        node_id = self._ids_by_payload.get(id(payload))
        if node_id is None or self._nodes[node_id].payload is not payload:
            raise NotFound(f"Payload {payload!r} is not part of this graph")
        return node_id

    def context(self, node_id: int) -> Context:
        """Return a navigation context bound to `node_id`."""
        self._record(node_id)
        return Context(self, node_id)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def add_rule(self, rule: Rule) -> None:
        """Register a rule after the existing ones."""
        if not isinstance(rule, Rule):
            raise TypeError(f"Expected a Rule, got {type(rule).__name__}")
        self._rules.append(rule)
        self._dispatch.clear()

    def rules_for(self, node_type: type) -> tuple[Rule, ...]:
        """
        Rules applicable to a payload type, in registration order.

        Resolved once per concrete type and cached; a rule registered for a
        base class applies to its subclasses.
        """
        resolved = self._dispatch.get(node_type)
        if resolved is None:
            resolved = tuple(
                rule for rule in self._rules
                if issubclass(node_type, rule.node_type)
            )
            self._dispatch[node_type] = resolved
        return resolved

    # ------------------------------------------------------------------
    # Structural mutation
    # ------------------------------------------------------------------

    def prune(self, node_id: int) -> int:
        """
        Remove a node together with its whole subtree.

        Returns
        -------
        int
            Number of nodes removed.

        Raises
        ------
        StructuralViolation
            If asked to prune the root.
        """
        record = self._record(node_id)
        if record.parent is None:
            raise StructuralViolation("Cannot prune the root of a graph")

        self._nodes[record.parent].children.remove(node_id)
        removed = 0
        stack = [node_id]
        while stack:
            current = self._nodes[stack.pop()]
            stack.extend(current.children)
            self._forget(current.node_id)
            removed += 1
        self._version += 1
        return removed

    def copy(self) -> "Graph":
        """Return an independent deep copy (payloads and graph data included)."""
        return copy.deepcopy(self)

    def __deepcopy__(self, memo: dict) -> "Graph":
        clone = type(self).__new__(type(self))
        memo[id(self)] = clone
        clone._nodes = {}
        clone._ids_by_payload = {}
        for node_id, record in self._nodes.items():
            payload = copy.deepcopy(record.payload, memo)
            clone._nodes[node_id] = NodeRecord(
                node_id, payload, record.parent, list(record.children)
            )
            clone._ids_by_payload[id(payload)] = node_id
        clone._next_id = self._next_id
        clone._version = self._version
        clone._root_id = self._root_id
        clone.data = copy.deepcopy(self.data, memo)
        clone.generation = self.generation
        clone._rules = list(self._rules)
        clone._dispatch = {}
        return clone

    def _record(self, node_id: int) -> NodeRecord:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFound(f"Node {node_id} does not exist in this graph") from None

    def _forget(self, node_id: int) -> None:
        record = self._nodes.pop(node_id)
        if self._ids_by_payload.get(id(record.payload)) == node_id:
            del self._ids_by_payload[id(record.payload)]

    @staticmethod
    def _adopt(payload: Node, reusable: set[int]) -> Node:
        """Copy a payload unless it is the reusable instance seen for the first time."""
        if id(payload) in reusable:
            reusable.discard(id(payload))
            return payload
        return payload.model_copy(deep=True)

    def _materialize(
        self, fragment: Fragment, reuse: Optional[Node] = None
    ) -> tuple[int, int]:
        """
        Insert a fragment as a detached subtree.

        Every payload is copied so that no node shares mutable state with
        another node or another graph. The one exception is `reuse`, the
        payload of the node being replaced, which is kept as is the first
        time it appears in the fragment.

        Returns
        -------
        tuple[int, int]
            Ids of the fragment root and of its insertion point.
        """
        reusable = {id(reuse)} if reuse is not None else set()
        ids: list[int] = []
        for payload, parent in zip(fragment.payloads, fragment.parents):
            node_id = self._next_id
            self._next_id += 1
            payload = self._adopt(payload, reusable)
            parent_id = ids[parent] if parent >= 0 else None
            self._nodes[node_id] = NodeRecord(node_id, payload, parent_id)
            self._ids_by_payload[id(payload)] = node_id
            if parent_id is not None:
                self._nodes[parent_id].children.append(node_id)
            ids.append(node_id)
        self._version += 1
        return ids[0], ids[fragment.insertion]

    def _replace(self, node_id: int, fragment: Fragment) -> None:
        """
        Splice `fragment` in place of `node_id`.

        The replacement root takes the node's slot in its parent's children
        (or becomes the root); the node's former children are appended below
        the replacement's insertion point. An empty fragment removes only the
        node and hands its children to its parent.
        """
        record = self._record(node_id)
        parent_id = record.parent
        orphans = list(record.children)
        self._forget(node_id)

        if fragment.is_empty:
            if parent_id is None:
                if len(orphans) != 1:
                    raise StructuralViolation(
                        f"Removing root {node_id} would leave {len(orphans)} roots"
                    )
                self._root_id = orphans[0]
                self._nodes[orphans[0]].parent = None
            else:
                siblings = self._nodes[parent_id].children
                slot = siblings.index(node_id)
                siblings[slot:slot + 1] = orphans
                for orphan in orphans:
                    self._nodes[orphan].parent = parent_id
            self._version += 1
            return

        new_root, insertion = self._materialize(fragment, reuse=record.payload)
        if parent_id is None:
            self._root_id = new_root
        else:
            siblings = self._nodes[parent_id].children
            siblings[siblings.index(node_id)] = new_root
            self._nodes[new_root].parent = parent_id
        self._nodes[insertion].children.extend(orphans)
        for orphan in orphans:
            self._nodes[orphan].parent = insertion

    def _checkpoint(self) -> tuple:
        """Capture topology so a failed rewrite can be rolled back."""
        records = {
            node_id: NodeRecord(node_id, r.payload, r.parent, list(r.children))
            for node_id, r in self._nodes.items()
        }
        return (
            records,
            dict(self._ids_by_payload),
            self._root_id,
            self._next_id,
            self._version,
        )

    def _restore(self, checkpoint: tuple) -> None:
        records, ids_by_payload, root_id, next_id, version = checkpoint
        self._nodes = records
        self._ids_by_payload = ids_by_payload
        self._root_id = root_id
        self._next_id = next_id
        self._version = version

    def __repr__(self) -> str:
        return (
            f"Graph(nodes={len(self._nodes)}, rules={len(self._rules)}, "
            f"generation={self.generation})"
        )
