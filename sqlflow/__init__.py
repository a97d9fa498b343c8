"""SQL Flow Visualizer — Turn SQL SELECT queries into data-flow graphs with lineage."""

__version__ = "0.1.0"

from sqlflow.core.models import (
    BuildError,
    ColumnRef,
    FlowEdge,
    FlowGraph,
    FlowNode,
    LineageEntry,
    Position,
    SchemaTable,
)
from sqlflow.core.builder import build, sql_to_flow_graph
from sqlflow.core.lineage import compute_column_lineage
from sqlflow.flow.layout import compute_layout

__all__ = [
    "BuildError",
    "ColumnRef",
    "FlowEdge",
    "FlowGraph",
    "FlowNode",
    "LineageEntry",
    "Position",
    "SchemaTable",
    "build",
    "sql_to_flow_graph",
    "compute_column_lineage",
    "compute_layout",
]
