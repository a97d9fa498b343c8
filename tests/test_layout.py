"""Tests for the Graphviz-backed layout engine."""

import json
import shutil
from pathlib import Path

import graphviz
import pytest

from sqlflow.config import Settings
from sqlflow.core.builder import sql_to_flow_graph
from sqlflow.core.errors import LayoutError
from sqlflow.core.models import (
    AggregationData,
    CTEGroupData,
    ColumnRef,
    FilterData,
    FlowGraph,
    FlowNode,
    JoinData,
    OutputData,
    Position,
    TableSourceData,
)
from sqlflow.flow import layout
from sqlflow.flow.layout import (
    GraphvizSolver,
    LayoutOptions,
    compute_layout,
    estimate_node_size,
    extract_positions,
    to_layout_graph,
)

CTE_QUERY = (
    "WITH t AS (SELECT customer_id, SUM(total) AS s FROM orders GROUP BY customer_id) "
    "SELECT c.name, t.s FROM t JOIN customers c ON t.customer_id = c.id"
)

requires_dot = pytest.mark.skipif(shutil.which("dot") is None, reason="Graphviz not installed")

# `dot -Tjson` output for CTE_QUERY (no schema) laid out with the default options
CTE_LAYOUT_JSON = Path(__file__).parent / "data" / "cte_layout.json"


def _columns(*names):
    return [ColumnRef(name=n) for n in names]


class TestEstimateNodeSize:
    def test_table_grows_with_columns(self):
        node = FlowNode(id="t", data=TableSourceData(table_name="t", columns=_columns("a", "b")))
        assert estimate_node_size(node) == (220.0, 88.0)

    def test_table_without_columns(self):
        node = FlowNode(id="t", data=TableSourceData(table_name="t"))
        assert estimate_node_size(node) == (220.0, 64.0)

    def test_compact_nodes(self):
        join = FlowNode(id="j", data=JoinData())
        filter_node = FlowNode(id="f", data=FilterData(condition="a > 1"))
        assert estimate_node_size(join) == (220.0, 64.0)
        assert estimate_node_size(filter_node) == (220.0, 64.0)

    def test_aggregation_counts_groups_and_aggregates(self):
        node = FlowNode(
            id="a",
            data=AggregationData(group_by_columns=["x"], aggregates=["SUM(y)", "COUNT(*)"]),
        )
        assert estimate_node_size(node) == (220.0, 112.0)

    def test_output(self):
        node = FlowNode(id="o", data=OutputData(columns=_columns("a", "b", "c", "d", "e")))
        assert estimate_node_size(node) == (220.0, 160.0)

    def test_group_is_sized_by_solver(self):
        node = FlowNode(id="g", data=CTEGroupData(cte_name="t"))
        assert estimate_node_size(node) == (0.0, 0.0)


class TestLayoutGraph:
    def test_graph_attributes(self):
        source = to_layout_graph(sql_to_flow_graph("SELECT id FROM orders")).source
        assert "rankdir=LR" in source
        assert "splines=ortho" in source

    def test_cte_children_placed_in_cluster(self):
        source = to_layout_graph(sql_to_flow_graph(CTE_QUERY)).source

        assert "subgraph cluster_cte_group_0 {" in source
        assert "\t\ttable_1 [" in source
        assert "\t\tagg_2 [" in source
        assert "\t\ttable_1 -> agg_2" in source
        # the group itself is not a node
        assert "\tcte_group_0 [" not in source
        # result node and edges that leave the group stay at the root
        assert "\tcte_3 [" in source
        assert "\t\tcte_3 [" not in source
        assert "\tagg_2 -> cte_3" in source
        assert "\t\tagg_2 -> cte_3" not in source

    def test_cluster_labelled_with_cte_name(self):
        source = to_layout_graph(sql_to_flow_graph(CTE_QUERY)).source
        assert "label=t" in source


def _canned_graph():
    return FlowGraph(
        nodes=[
            FlowNode(id="g", data=CTEGroupData(cte_name="t")),
            FlowNode(id="a", data=TableSourceData(table_name="orders"), parent_cte_id="g"),
            FlowNode(id="b", data=OutputData()),
            FlowNode(id="c", data=FilterData(condition="x")),
        ]
    )


CANNED_LAYOUT = {
    "bb": "0,0,600,300",
    "objects": [
        {"name": "cluster_g", "bb": "10,20,260,200"},
        {"name": "a", "pos": "128,130", "width": "2", "height": "1"},
        {"name": "b", "pos": "450,150", "width": "3", "height": "1"},
    ],
}


class TestExtractPositions:
    def test_group_box_flipped_to_top_left(self):
        positions = extract_positions(CANNED_LAYOUT, _canned_graph())
        assert positions["g"] == Position(x=10, y=100, width=250, height=180)

    def test_child_relative_to_group(self):
        positions = extract_positions(CANNED_LAYOUT, _canned_graph())
        assert positions["a"] == Position(x=46, y=34, width=144, height=72)

    def test_root_node_absolute(self):
        positions = extract_positions(CANNED_LAYOUT, _canned_graph())
        assert positions["b"] == Position(x=342, y=114, width=216, height=72)

    def test_unplaced_node_gets_default_box(self):
        positions = extract_positions(CANNED_LAYOUT, _canned_graph())
        assert positions["c"] == Position(x=0, y=0, width=220, height=60)

    def test_default_box_follows_options(self):
        options = LayoutOptions(default_width=100, default_height=40)
        positions = extract_positions({}, _canned_graph(), options)
        assert positions["c"] == Position(x=0, y=0, width=100, height=40)


class TestGraphvizJSON:
    @pytest.fixture
    def layout_json(self):
        return json.loads(CTE_LAYOUT_JSON.read_text())

    def test_fixture_matches_layout_graph(self, layout_json):
        graph = sql_to_flow_graph(CTE_QUERY)
        placed = {obj["name"] for obj in layout_json["objects"] if "pos" in obj}
        assert placed == {n.id for n in graph.nodes if n.data.kind != "cte-group"}

    @pytest.mark.parametrize(
        "node_id, expected",
        [
            ("cte_group_0", (8, 66, 610, 138)),
            ("table_1", (30, 37, 220, 64)),
            ("agg_2", (360, 25, 220, 88)),
            ("cte_3", (698, 91, 220, 88)),
            ("table_4", (698, 8, 220, 64)),
            ("join_5", (1028, 56, 220, 64)),
            ("output_6", (1328, 44, 220, 88)),
        ],
    )
    def test_positions(self, layout_json, node_id, expected):
        positions = extract_positions(layout_json, sql_to_flow_graph(CTE_QUERY))
        box = positions[node_id]
        assert (box.x, box.y, box.width, box.height) == pytest.approx(expected, abs=0.01)

    def test_children_inside_group(self, layout_json):
        graph = sql_to_flow_graph(CTE_QUERY)
        positions = extract_positions(layout_json, graph)
        group = positions["cte_group_0"]
        for child in graph.children_of("cte_group_0"):
            box = positions[child.id]
            assert 0 <= box.x and box.x + box.width <= group.width
            assert 0 <= box.y and box.y + box.height <= group.height

    def test_boxes_non_negative(self, layout_json):
        positions = extract_positions(layout_json, sql_to_flow_graph(CTE_QUERY))
        assert all(p.x >= 0 and p.y >= 0 for p in positions.values())


class TestSolverErrors:
    def test_missing_executable(self, monkeypatch):
        def pipe(self, *args, **kwargs):
            raise graphviz.ExecutableNotFound(["dot"])

        monkeypatch.setattr(graphviz.Digraph, "pipe", pipe)
        with pytest.raises(LayoutError, match="not found"):
            GraphvizSolver().run(graphviz.Digraph())

    def test_unreadable_output(self, monkeypatch):
        monkeypatch.setattr(graphviz.Digraph, "pipe", lambda self, *a, **kw: "not json")
        with pytest.raises(LayoutError, match="Unreadable"):
            GraphvizSolver().run(graphviz.Digraph())

    @pytest.mark.anyio
    async def test_compute_layout_propagates(self, monkeypatch):
        def run(self, dot):
            raise LayoutError("boom")

        monkeypatch.setattr(GraphvizSolver, "run", run)
        with pytest.raises(LayoutError, match="boom"):
            await compute_layout(sql_to_flow_graph("SELECT id FROM orders"), LayoutOptions())


class TestComputeLayout:
    def test_options_from_settings(self):
        settings = Settings(node_spacing=10, layer_spacing=20, group_padding=5)
        options = LayoutOptions.from_settings(settings)
        assert (options.node_spacing, options.layer_spacing, options.group_padding) == (10, 20, 5)
        assert (options.default_width, options.default_height) == (220, 60)

    def test_solver_is_shared(self):
        assert layout.get_solver("dot") is layout.get_solver("dot")

    @pytest.mark.anyio
    async def test_positions_use_canned_solver_output(self, monkeypatch):
        monkeypatch.setattr(GraphvizSolver, "run", lambda self, dot: CANNED_LAYOUT)
        positions = await compute_layout(_canned_graph(), LayoutOptions())
        assert positions["a"] == Position(x=46, y=34, width=144, height=72)

    @requires_dot
    @pytest.mark.anyio
    async def test_real_layout(self, ecommerce_schema):
        graph = sql_to_flow_graph(CTE_QUERY, schema=ecommerce_schema)
        positions = await compute_layout(graph, LayoutOptions())

        assert set(positions) == {n.id for n in graph.nodes}
        for node in graph.nodes:
            box = positions[node.id]
            if node.data.kind == "cte-group":
                assert box.width > 0 and box.height > 0
            else:
                assert box.width == pytest.approx(220, abs=1)

        group = positions["cte_group_0"]
        for child_id in ("table_1", "agg_2"):
            child = positions[child_id]
            assert 0 <= child.x <= group.width
            assert 0 <= child.y <= group.height
