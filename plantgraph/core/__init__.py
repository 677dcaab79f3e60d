"""
plantgraph Core: Graph Rewriting and Relational Query Engine
============================================================

Public API:
- Node / Fragment: node payload base class and the `+` / branch algebra
- Graph: node store holding topology, graph-level data and rules
- Rule / rewrite: rule definition and one rewriting generation
- Query / apply / select: type + condition matching without replacement
- traverse / traverse_dfs / traverse_bfs: ordered visitation
- Context and navigation helpers: parent, children, has_ancestor, ...
- Errors: PlantGraphError, StructuralViolation, NotFound
"""

from plantgraph.core.errors import NotFound, PlantGraphError, StructuralViolation
from plantgraph.core.node import Fragment, Node
from plantgraph.core.context import (
    Context,
    ancestor,
    children,
    data,
    descendant,
    graph_data,
    has_ancestor,
    has_children,
    has_descendant,
    has_parent,
    is_leaf,
    is_root,
    parent,
)
from plantgraph.core.rules import Rule, RewriteReport, rewrite
from plantgraph.core.query import Query, apply, select
from plantgraph.core.traversal import traverse, traverse_bfs, traverse_dfs
from plantgraph.core.graph import Graph, NodeRecord

__all__ = [
    "Node",
    "Fragment",
    "Graph",
    "NodeRecord",
    "Rule",
    "RewriteReport",
    "rewrite",
    "Query",
    "apply",
    "select",
    "traverse",
    "traverse_dfs",
    "traverse_bfs",
    "Context",
    "data",
    "graph_data",
    "parent",
    "children",
    "has_parent",
    "has_children",
    "is_root",
    "is_leaf",
    "has_ancestor",
    "has_descendant",
    "ancestor",
    "descendant",
    "PlantGraphError",
    "StructuralViolation",
    "NotFound",
]
