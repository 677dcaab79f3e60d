"""
plantgraph Platform: multi-graph orchestration, snapshots and export.
"""

from plantgraph.platform.export import to_networkx, validate_topology
from plantgraph.platform.forest import Forest, ForestSettings, TreeOutcome, simulate
from plantgraph.platform.snapshot import graph_fingerprint, graph_snapshot

__all__ = [
    "Forest",
    "ForestSettings",
    "TreeOutcome",
    "simulate",
    "graph_snapshot",
    "graph_fingerprint",
    "to_networkx",
    "validate_topology",
]
