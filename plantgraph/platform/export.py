"""
NetworkX Export
===============

Hand a plantgraph graph to the wider Python graph ecosystem, and check the
tree invariants with networkx's own algorithms.
"""

from typing import Any

import networkx as nx

from plantgraph.core.errors import StructuralViolation
from plantgraph.core.graph import Graph


def to_networkx(graph: Graph, include_payload: bool = False) -> nx.DiGraph:
    """
    Convert a graph into a directed networkx tree.

    Parameters
    ----------
    graph : Graph
        Source graph.
    include_payload : bool
        Store the payload object itself under the "payload" attribute.
        Off by default so the export does not alias live payloads.

    Returns
    -------
    nx.DiGraph
        Nodes keyed by node id with `type`, `label` and `fields`
        attributes; edges go parent -> child with an `order` attribute.
    """
    G = nx.DiGraph(root=graph.root_id, generation=graph.generation)

    for node_id in graph.node_ids():
        payload = graph.payload(node_id)
        attrs: dict[str, Any] = {
            "type": type(payload).__name__,
            "label": payload.label(),
            "fields": payload.model_dump(),
        }
        if include_payload:
            attrs["payload"] = payload
        G.add_node(node_id, **attrs)

    for node_id in graph.node_ids():
        for order, child_id in enumerate(graph.children_ids(node_id)):
            G.add_edge(node_id, child_id, order=order)

    return G


def validate_topology(graph: Graph) -> None:
    """
    Check that the graph is a rooted tree reachable from its root.

    Raises
    ------
    StructuralViolation
        If the graph is not an arborescence, the root has a parent, or a
        parent/child link is not mirrored on both sides.
    """
    G = to_networkx(graph)

    if graph.parent_id(graph.root_id) is not None:
        raise StructuralViolation(f"Root {graph.root_id} has a parent")

    for node_id in graph.node_ids():
        parent_id = graph.parent_id(node_id)
        if parent_id is None and node_id != graph.root_id:
            raise StructuralViolation(f"Node {node_id} has no parent but is not the root")
        if parent_id is not None and node_id not in graph.children_ids(parent_id):
            raise StructuralViolation(
                f"Node {node_id} points to parent {parent_id} which does not list it"
            )

    if not nx.is_arborescence(G):
        raise StructuralViolation("Graph is not a rooted tree")

    reachable = nx.descendants(G, graph.root_id) | {graph.root_id}
    if len(reachable) != G.number_of_nodes():
        raise StructuralViolation(
            f"{G.number_of_nodes() - len(reachable)} nodes are unreachable from the root"
        )
