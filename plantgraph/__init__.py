"""
plantgraph
==========

Graph rewriting and relational queries for functional-structural plant
models.
"""

from plantgraph.core import (
    Context,
    Fragment,
    Graph,
    Node,
    NotFound,
    PlantGraphError,
    Query,
    RewriteReport,
    Rule,
    StructuralViolation,
    apply,
    rewrite,
    select,
    traverse,
    traverse_bfs,
    traverse_dfs,
)
from plantgraph.platform import Forest, ForestSettings, simulate

__version__ = "0.1.0"

__all__ = [
    # Core
    "Node",
    "Fragment",
    "Graph",
    "Context",
    "Rule",
    "RewriteReport",
    "rewrite",
    "Query",
    "apply",
    "select",
    "traverse",
    "traverse_dfs",
    "traverse_bfs",
    # Errors
    "PlantGraphError",
    "StructuralViolation",
    "NotFound",
    # Platform
    "Forest",
    "ForestSettings",
    "simulate",
]
