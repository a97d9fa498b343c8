"""Hierarchical auto-layout for flow graphs, solved with Graphviz ``dot``.

CTE groups become ``cluster_*`` subgraphs, so the solver sizes each group
from the nodes inside it. Node boxes are estimated from their content and
passed to the solver as fixed sizes. Graphviz works in points (1/72 inch)
with the origin at the bottom left; sizes are given in pixels/72 so points
come back as pixels, and the y axis is flipped on the way out.
"""

from __future__ import annotations

import asyncio
import json
import logging
from functools import lru_cache
from typing import Any, Optional

import graphviz
from pydantic import BaseModel

from sqlflow.config import Settings, get_settings
from sqlflow.core.errors import LayoutError
from sqlflow.core.models import FlowGraph, FlowNode, Position

logger = logging.getLogger(__name__)

BASE_WIDTH = 220
ROW_HEIGHT = 24
MIN_HEIGHT = 60
# header and padding inside column-listing nodes
NODE_CHROME = 16

POINTS_PER_INCH = 72.0
CLUSTER_PREFIX = "cluster_"


class LayoutOptions(BaseModel):
    node_spacing: int = 40
    layer_spacing: int = 80
    # interior padding of a CTE group, leaves room for its name label
    group_padding: int = 30
    default_width: int = BASE_WIDTH
    default_height: int = MIN_HEIGHT
    engine: str = "dot"

    @classmethod
    def from_settings(cls, settings: Settings) -> LayoutOptions:
        return cls(
            node_spacing=settings.node_spacing,
            layer_spacing=settings.layer_spacing,
            group_padding=settings.group_padding,
            default_width=settings.default_node_width,
            default_height=settings.default_node_height,
        )


def estimate_node_size(node: FlowNode) -> tuple[float, float]:
    """Estimate the pixel size ``(width, height)`` of a node from its data.

    Nodes that list columns grow with their column count; join and filter
    nodes are compact. CTE groups report 0 x 0: the solver sizes them from
    their children.
    """
    data = node.data
    kind = data.kind

    if kind == "cte-group":
        return 0.0, 0.0
    if kind == "table-source":
        rows = max(len(data.columns), 1) + 1
    elif kind == "cte":
        rows = max(len(data.output_columns), 1) + 1
    elif kind == "output":
        rows = max(len(data.columns), 1) + 1
    elif kind == "aggregation":
        rows = len(data.group_by_columns) + len(data.aggregates) + 1
    else:
        rows = 2

    return float(BASE_WIDTH), float(max(MIN_HEIGHT, rows * ROW_HEIGHT + NODE_CHROME))


def _inches(pixels: float) -> str:
    return f"{pixels / POINTS_PER_INCH:.4f}"


def to_layout_graph(graph: FlowGraph, options: Optional[LayoutOptions] = None) -> graphviz.Digraph:
    """Build the compound Graphviz graph handed to the solver.

    Children of a cte-group go into that group's cluster; an edge is placed
    inside a cluster only when both endpoints belong to the same group.
    """
    options = options or LayoutOptions()

    dot = graphviz.Digraph(
        name="flow",
        graph_attr={
            "rankdir": "LR",
            "splines": "ortho",
            "nodesep": _inches(options.node_spacing),
            "ranksep": _inches(options.layer_spacing),
        },
        node_attr={"shape": "box", "fixedsize": "true", "label": ""},
    )

    groups = {n.id: n for n in graph.nodes if n.data.kind == "cte-group"}
    children: dict[str, list[FlowNode]] = {group_id: [] for group_id in groups}
    membership: dict[str, str] = {}
    root_nodes: list[FlowNode] = []

    for node in graph.nodes:
        if node.id in groups:
            continue
        if node.parent_cte_id in groups:
            children[node.parent_cte_id].append(node)
            membership[node.id] = node.parent_cte_id
        else:
            root_nodes.append(node)

    def add_node(target: graphviz.Digraph, node: FlowNode) -> None:
        width, height = estimate_node_size(node)
        target.node(node.id, width=_inches(width), height=_inches(height))

    for node in root_nodes:
        add_node(dot, node)

    internal: dict[str, list] = {group_id: [] for group_id in groups}
    root_edges = []
    for edge in graph.edges:
        group_id = membership.get(edge.source)
        if group_id is not None and membership.get(edge.target) == group_id:
            internal[group_id].append(edge)
        else:
            root_edges.append(edge)

    for group_id, group in groups.items():
        with dot.subgraph(name=CLUSTER_PREFIX + group_id) as cluster:
            cluster.attr(
                label=group.data.cte_name,
                labeljust="l",
                labelloc="t",
                margin=str(options.group_padding),
            )
            for node in children[group_id]:
                add_node(cluster, node)
            for edge in internal[group_id]:
                cluster.edge(edge.source, edge.target)

    for edge in root_edges:
        dot.edge(edge.source, edge.target)

    return dot


def _floats(value: str) -> list[float]:
    return [float(part) for part in value.split(",")]


def extract_positions(
    layout: dict[str, Any],
    graph: FlowGraph,
    options: Optional[LayoutOptions] = None,
) -> dict[str, Position]:
    """Convert Graphviz JSON output into pixel boxes keyed by node id.

    Boxes use a top-left origin. A node inside a group is positioned
    relative to its group's box. Nodes the solver did not place get the
    default box at the origin.
    """
    options = options or LayoutOptions()
    root_x, _, _, root_top = _floats(layout.get("bb", "0,0,0,0"))

    absolute: dict[str, Position] = {}
    for obj in layout.get("objects", []):
        name = obj.get("name", "")
        if "bb" in obj and name.startswith(CLUSTER_PREFIX):
            llx, lly, urx, ury = _floats(obj["bb"])
            absolute[name[len(CLUSTER_PREFIX):]] = Position(
                x=llx - root_x,
                y=root_top - ury,
                width=urx - llx,
                height=ury - lly,
            )
        elif "pos" in obj:
            cx, cy = _floats(obj["pos"])[:2]
            width = float(obj.get("width", 0)) * POINTS_PER_INCH
            height = float(obj.get("height", 0)) * POINTS_PER_INCH
            absolute[name] = Position(
                x=cx - width / 2 - root_x,
                y=root_top - cy - height / 2,
                width=width,
                height=height,
            )

    positions: dict[str, Position] = {}
    for node in graph.nodes:
        box = absolute.get(node.id)
        if box is None:
            logger.debug("no geometry for node %s, using default box", node.id)
            positions[node.id] = Position(
                x=0, y=0, width=options.default_width, height=options.default_height
            )
            continue
        parent = absolute.get(node.parent_cte_id) if node.parent_cte_id else None
        if parent is not None:
            box = box.model_copy(update={"x": box.x - parent.x, "y": box.y - parent.y})
        positions[node.id] = box

    return positions


class GraphvizSolver:
    """Runs a Graphviz layout engine and returns its JSON output."""

    def __init__(self, engine: str = "dot") -> None:
        self.engine = engine

    def run(self, dot: graphviz.Digraph) -> dict[str, Any]:
        try:
            output = dot.pipe(format="json", engine=self.engine, encoding="utf-8")
            return json.loads(output)
        except graphviz.ExecutableNotFound as e:
            raise LayoutError(f"Graphviz '{self.engine}' executable not found") from e
        except graphviz.CalledProcessError as e:
            raise LayoutError(f"Graphviz '{self.engine}' failed: {e.stderr or e}") from e
        except ValueError as e:
            raise LayoutError(f"Unreadable Graphviz output: {e}") from e


@lru_cache(maxsize=None)
def get_solver(engine: str = "dot") -> GraphvizSolver:
    """Return the shared solver for ``engine``, created on first use."""
    logger.debug("initialising Graphviz solver (%s)", engine)
    return GraphvizSolver(engine)


async def compute_layout(
    graph: FlowGraph,
    options: Optional[LayoutOptions] = None,
) -> dict[str, Position]:
    """Compute a left-to-right layered layout for a flow graph.

    The solver runs in a worker thread. Its failures raise ``LayoutError``;
    no partial layout is returned.

    Args:
        graph: A FlowGraph produced by the graph builder.
        options: Spacing and fallback sizes; defaults come from settings.

    Returns:
        Mapping of node id to its Position.
    """
    options = options or LayoutOptions.from_settings(get_settings())
    dot = to_layout_graph(graph, options)
    solver = get_solver(options.engine)
    layout = await asyncio.to_thread(solver.run, dot)
    positions = extract_positions(layout, graph, options)
    logger.debug("layout computed for %d nodes", len(positions))
    return positions
