"""
Canonical graph snapshots and deterministic fingerprints.

A snapshot is a nested, JSON-safe description of a graph in depth-first
order (type, payload fields, children). Node ids are left out so that two
graphs built the same way compare equal even when their ids differ.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from plantgraph.core.graph import Graph


def graph_snapshot(graph: Graph, *, include_data: bool = True) -> dict[str, Any]:
    """
    Build a nested snapshot of the graph starting at the root.
    """
    def describe(node_id: int) -> dict[str, Any]:
        payload = graph.payload(node_id)
        entry: dict[str, Any] = {"type": type(payload).__name__, "children": []}
        if include_data:
            entry["data"] = _normalize(payload.model_dump())
        return entry

    root = describe(graph.root_id)
    stack = [(graph.root_id, root)]
    while stack:
        node_id, entry = stack.pop()
        for child_id in graph.children_ids(node_id):
            child = describe(child_id)
            entry["children"].append(child)
            stack.append((child_id, child))

    snapshot = {"generation": graph.generation, "root": root}
    if include_data and graph.data is not None:
        snapshot["graph_data"] = _normalize(graph.data)
    return snapshot


def graph_fingerprint(
    graph: Graph,
    *,
    namespace: str = "plantgraph.graph.v1",
    include_data: bool = True,
) -> str:
    """
    Deterministic hash of topology and payloads.

    Two graphs with the same shape and payload values share a fingerprint
    regardless of node ids or store order.
    """
    snapshot = graph_snapshot(graph, include_data=include_data)
    snapshot.pop("generation")
    blob = json.dumps(snapshot, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(f"{namespace}|{blob}".encode("utf-8")).hexdigest()[:16]


def _normalize(value: Any) -> Any:
    """Normalize nested values into stable, JSON-safe form."""
    if isinstance(value, dict):
        return {
            str(k): _normalize(v)
            for k, v in sorted(value.items(), key=lambda item: str(item[0]))
        }

    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]

    if isinstance(value, (set, frozenset)):
        return sorted(_normalize(item) for item in value)

    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, Enum):
        return value.value

    if hasattr(value, "model_dump"):
        return _normalize(value.model_dump(mode="json"))

    if hasattr(value, "__dataclass_fields__"):
        return _normalize({name: getattr(value, name) for name in value.__dataclass_fields__})

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    return repr(value)
