"""Tests for the renderer payload and color palette."""

from sqlflow.core.builder import sql_to_flow_graph
from sqlflow.core.lineage import compute_column_lineage
from sqlflow.core.models import Position
from sqlflow.flow.colors import PALETTE, get_table_color
from sqlflow.flow.render import to_render_payload

CTE_QUERY = (
    "WITH t AS (SELECT customer_id, SUM(total) AS s FROM orders GROUP BY customer_id) "
    "SELECT c.name, t.s FROM t JOIN customers c ON t.customer_id = c.id"
)


class TestColors:
    def test_palette_size(self):
        assert len(PALETTE) == 8

    def test_index_wraps_around(self):
        assert get_table_color(8) == PALETTE[0]
        assert get_table_color(11) == PALETTE[3]


class TestRenderPayload:
    def test_groups_listed_first(self):
        graph = sql_to_flow_graph(
            "WITH a AS (SELECT id FROM orders), b AS (SELECT id FROM a) SELECT id FROM b"
        )
        types = [n["type"] for n in to_render_payload(graph)["nodes"]]
        assert types[:2] == ["cte-group", "cte-group"]
        assert "cte-group" not in types[2:]

    def test_child_nodes_reference_group(self):
        payload = to_render_payload(sql_to_flow_graph(CTE_QUERY))
        nodes = {n["id"]: n for n in payload["nodes"]}

        assert nodes["table_1"]["parentId"] == "cte_group_0"
        assert nodes["table_1"]["extent"] == "parent"
        assert "parentId" not in nodes["cte_3"]
        assert "parentId" not in nodes["cte_group_0"]

    def test_node_data_is_camel_case_with_color(self):
        payload = to_render_payload(sql_to_flow_graph(CTE_QUERY))
        table = next(n for n in payload["nodes"] if n["id"] == "table_4")

        assert table["data"]["tableName"] == "customers"
        assert table["data"]["alias"] == "c"
        assert table["data"]["color"] == get_table_color(2).model_dump()

    def test_nodes_without_color_index(self):
        payload = to_render_payload(sql_to_flow_graph(CTE_QUERY))
        join = next(n for n in payload["nodes"] if n["type"] == "join")
        assert "color" not in join["data"]
        assert join["data"]["joinType"] == "INNER"

    def test_positions_and_default_box(self):
        graph = sql_to_flow_graph("SELECT id FROM orders")
        positions = {"table_0": Position(x=5, y=6, width=220, height=88)}
        nodes = {n["id"]: n for n in to_render_payload(graph, positions)["nodes"]}

        assert nodes["table_0"]["position"] == {"x": 5, "y": 6}
        assert nodes["table_0"]["style"] == {"width": 220, "height": 88}
        assert nodes["output_1"]["position"] == {"x": 0, "y": 0}
        assert nodes["output_1"]["style"] == {"width": 220, "height": 60}

    def test_edges(self):
        graph = sql_to_flow_graph("SELECT id, total FROM orders WHERE total > 0")
        edges = to_render_payload(graph)["edges"]

        assert [e["id"] for e in edges] == ["e_table_0_filter_1", "e_filter_1_output_2"]
        assert all(e["type"] == "columnFlow" and e["animated"] for e in edges)
        assert edges[0]["data"] == {"columns": []}
        assert edges[1]["data"] == {"columns": ["id", "total"]}

    def test_lineage_included_on_request(self):
        graph = sql_to_flow_graph("SELECT a.x FROM t AS a")
        assert "lineage" not in to_render_payload(graph)

        payload = to_render_payload(graph, lineage=compute_column_lineage(graph))
        assert payload["lineage"] == [
            {"outputColumn": "x", "sources": [{"table": "t", "column": "x"}]}
        ]
