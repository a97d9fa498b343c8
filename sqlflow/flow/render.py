"""Convert a FlowGraph plus layout into the JSON payload a renderer draws."""

from __future__ import annotations

from typing import Any, Optional

from sqlflow.core.models import FlowGraph, LineageEntry, Position
from sqlflow.flow.colors import get_table_color

DEFAULT_POSITION = Position(x=0, y=0, width=220, height=60)


def _node_payload(node, position: Position) -> dict[str, Any]:
    data = node.data.to_json()
    color_index = getattr(node.data, "color_index", None)
    if color_index is not None:
        data["color"] = get_table_color(color_index).model_dump()

    payload: dict[str, Any] = {
        "id": node.id,
        "type": node.data.kind,
        "position": {"x": position.x, "y": position.y},
        "data": data,
        "style": {"width": position.width, "height": position.height},
    }
    if node.parent_cte_id:
        payload["parentId"] = node.parent_cte_id
        payload["extent"] = "parent"
    return payload


def to_render_payload(
    graph: FlowGraph,
    positions: Optional[dict[str, Position]] = None,
    lineage: Optional[list[LineageEntry]] = None,
) -> dict[str, Any]:
    """Merge graph, positions and lineage into one JSON-ready structure.

    Each node's ``type`` is its kind. Group nodes are listed before the
    nodes that reference them as parent, as renderers require.
    """
    positions = positions or {}
    ordered = sorted(graph.nodes, key=lambda n: 0 if n.data.kind == "cte-group" else 1)

    nodes = [_node_payload(n, positions.get(n.id, DEFAULT_POSITION)) for n in ordered]
    edges = [
        {
            "id": edge.id,
            "source": edge.source,
            "target": edge.target,
            "animated": True if edge.animated is None else edge.animated,
            "label": edge.label,
            "type": "columnFlow",
            "data": {"columns": edge.columns or []},
        }
        for edge in graph.edges
    ]

    payload: dict[str, Any] = {"nodes": nodes, "edges": edges}
    if lineage is not None:
        payload["lineage"] = [entry.to_json() for entry in lineage]
    return payload
