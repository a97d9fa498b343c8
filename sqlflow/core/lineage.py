"""Column lineage — traces each output column back to the table it came from."""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlflow.core.models import (
    CTEData,
    ColumnRef,
    FlowGraph,
    FlowNode,
    LineageEntry,
    LineageSource,
    OutputData,
    TableSourceData,
)

logger = logging.getLogger(__name__)


class _Tracer:
    def __init__(self, graph: FlowGraph) -> None:
        self.nodes: dict[str, FlowNode] = {n.id: n for n in graph.nodes}
        # target id -> source ids, in edge order
        self.incoming: dict[str, list[str]] = defaultdict(list)
        for edge in graph.edges:
            self.incoming[edge.target].append(edge.source)
        # a well-formed graph is acyclic, so no path is longer than this
        self.max_depth = len(graph.nodes)

    def _find_table_source(self, name: str) -> TableSourceData | None:
        for node in self.nodes.values():
            data = node.data
            if isinstance(data, TableSourceData) and name in (data.table_name, data.alias):
                return data
        return None

    def _find_cte(self, name: str) -> FlowNode | None:
        for node in self.nodes.values():
            if isinstance(node.data, CTEData) and node.data.cte_name == name:
                return node
        return None

    def trace(self, col: ColumnRef, node_id: str, depth: int = 0) -> list[LineageSource]:
        """Resolve ``col`` as seen at ``node_id`` to its source table column."""
        if depth > self.max_depth:
            logger.warning("lineage trace for %s exceeded depth %d", col.name, self.max_depth)
            return []

        if col.source_table and col.source_column:
            table = self._find_table_source(col.source_table)
            if table is not None:
                return [LineageSource(table=table.table_name, column=col.source_column)]

            cte_node = self._find_cte(col.source_table)
            if cte_node is not None:
                cte_col = next(
                    (c for c in cte_node.data.output_columns if c.name == col.source_column),
                    None,
                )
                if cte_col is not None and cte_col.source_column:
                    sources = self.trace(cte_col, cte_node.id, depth + 1)
                    if sources:
                        return sources
                # the CTE name stands in for the table
                return [LineageSource(table=col.source_table, column=col.source_column)]

        for parent_id in self.incoming.get(node_id, []):
            parent = self.nodes.get(parent_id)
            if parent is None:
                continue

            if isinstance(parent.data, TableSourceData):
                match = next(
                    (
                        c
                        for c in parent.data.columns
                        if c.name == col.name or c.name == col.source_column
                    ),
                    None,
                )
                if match is not None:
                    return [LineageSource(table=parent.data.table_name, column=match.name)]

            sources = self.trace(col, parent_id, depth + 1)
            if sources:
                return sources

        return []


def compute_column_lineage(graph: FlowGraph) -> list[LineageEntry]:
    """Compute the lineage of every column of the graph's output node.

    Each output column is traced backward: columns with a known
    ``table.column`` origin resolve directly against table-source and CTE
    nodes (recursing through CTE output columns), all others are matched
    against the columns of upstream table-source nodes.

    Args:
        graph: A FlowGraph produced by the graph builder.

    Returns:
        One LineageEntry per output column, in output order. Empty if the
        graph has no output node. Columns that cannot be traced (e.g. a
        literal) get an empty ``sources`` list.
    """
    output = next((n for n in graph.nodes if isinstance(n.data, OutputData)), None)
    if output is None:
        return []

    tracer = _Tracer(graph)
    lineage = [
        LineageEntry(output_column=col.name, sources=tracer.trace(col, output.id))
        for col in output.data.columns
    ]
    logger.debug(
        "lineage: %d/%d output columns resolved",
        sum(1 for e in lineage if e.sources),
        len(lineage),
    )
    return lineage


def format_lineage(entries: list[LineageEntry]) -> list[str]:
    """Render lineage entries as ``output <- table.column`` lines."""
    lines = []
    for entry in entries:
        if entry.sources:
            sources = ", ".join(str(s) for s in entry.sources)
        else:
            sources = "(unresolved)"
        lines.append(f"{entry.output_column} <- {sources}")
    return lines
