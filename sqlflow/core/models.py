"""Data models for the SQL flow graph, lineage and layout results."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FlowModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ColumnRef(FlowModel):
    """One column as it appears at some point in the pipeline.

    ``source_table``/``source_column`` are only set when the origin is
    statically known (a direct ``table.column`` reference); otherwise the
    lineage tracer resolves it by walking the graph.
    """

    name: str
    source_table: Optional[str] = None
    source_column: Optional[str] = None
    data_type: Optional[str] = None


# ── Node payloads ──


class TableSourceData(FlowModel):
    kind: Literal["table-source"] = "table-source"
    table_name: str
    alias: Optional[str] = None
    columns: list[ColumnRef] = Field(default_factory=list)
    color_index: int = 0


class CTEData(FlowModel):
    kind: Literal["cte"] = "cte"
    cte_name: str
    output_columns: list[ColumnRef] = Field(default_factory=list)
    has_where: bool = False
    has_group_by: bool = False
    color_index: int = 0


class CTEGroupData(FlowModel):
    """Container for the nodes produced while processing one CTE body."""

    kind: Literal["cte-group"] = "cte-group"
    cte_name: str
    color_index: int = 0


JoinType = Literal["INNER", "LEFT", "RIGHT", "FULL", "CROSS"]


class JoinData(FlowModel):
    kind: Literal["join"] = "join"
    join_type: JoinType = "INNER"
    condition: str = ""


class FilterData(FlowModel):
    kind: Literal["filter"] = "filter"
    condition: str


class AggregationData(FlowModel):
    kind: Literal["aggregation"] = "aggregation"
    group_by_columns: list[str] = Field(default_factory=list)
    aggregates: list[str] = Field(default_factory=list)


class OutputData(FlowModel):
    kind: Literal["output"] = "output"
    columns: list[ColumnRef] = Field(default_factory=list)
    order_by: Optional[str] = None
    limit: Optional[int] = None
    # table name (or alias) -> color palette index
    table_color_map: Optional[dict[str, int]] = None


FlowNodeData = Annotated[
    Union[
        TableSourceData,
        CTEData,
        CTEGroupData,
        JoinData,
        FilterData,
        AggregationData,
        OutputData,
    ],
    Field(discriminator="kind"),
]

NodeKind = Literal[
    "table-source", "cte", "cte-group", "join", "filter", "aggregation", "output"
]


class FlowNode(FlowModel):
    """A node in the flow graph."""

    id: str
    data: FlowNodeData
    # set when the node belongs to the CTE group with this id
    parent_cte_id: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.data.kind


class FlowEdge(FlowModel):
    """A directed data-flow edge: ``source`` produces rows consumed by ``target``."""

    id: str
    source: str
    target: str
    columns: Optional[list[str]] = None
    label: Optional[str] = None
    animated: Optional[bool] = None


class FlowGraph(FlowModel):
    """Complete flow graph with nodes and edges."""

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_kind(self, kind: str) -> list[FlowNode]:
        return [n for n in self.nodes if n.data.kind == kind]

    def incoming(self, node_id: str) -> list[FlowEdge]:
        """Edges that feed into the given node."""
        return [e for e in self.edges if e.target == node_id]

    def outgoing(self, node_id: str) -> list[FlowEdge]:
        """Edges that leave the given node."""
        return [e for e in self.edges if e.source == node_id]

    def children_of(self, group_id: str) -> list[FlowNode]:
        return [n for n in self.nodes if n.parent_cte_id == group_id]

    def validate_integrity(self) -> list[str]:
        """Check the structural invariants of the graph.

        Returns a list of human-readable violations; an empty list means the
        graph is well formed.
        """
        problems: list[str] = []
        ids: set[str] = set()
        groups: set[str] = set()

        for node in self.nodes:
            if node.id in ids:
                problems.append(f"duplicate node id: {node.id}")
            ids.add(node.id)
            if node.data.kind == "cte-group":
                groups.add(node.id)

        for node in self.nodes:
            if node.parent_cte_id is not None and node.parent_cte_id not in groups:
                problems.append(
                    f"node {node.id} references unknown cte-group {node.parent_cte_id}"
                )

        for edge in self.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in ids:
                    problems.append(f"edge {edge.id} references missing node {endpoint}")
                elif endpoint in groups:
                    problems.append(f"edge {edge.id} is incident on cte-group {endpoint}")

        return problems


class BuildError(FlowModel):
    """Error half of the build result; never carries a graph."""

    error: str


# ── Lineage ──


class LineageSource(FlowModel):
    table: str
    column: str

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


class LineageEntry(FlowModel):
    """Source chain for one output column."""

    output_column: str
    sources: list[LineageSource] = Field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return bool(self.sources)


# ── Layout ──


class Position(FlowModel):
    """Pixel box of a node; children of a group are relative to the group."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


# ── Schema metadata (consumed, not owned) ──


class SchemaColumn(FlowModel):
    name: str
    data_type: str = ""
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_table: Optional[str] = None
    foreign_column: Optional[str] = None
    default_value: Optional[str] = None


class SchemaTable(FlowModel):
    name: str
    columns: list[SchemaColumn] = Field(default_factory=list)

    def get_column(self, name: str) -> Optional[SchemaColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None
