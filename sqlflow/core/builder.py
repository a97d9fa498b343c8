"""Graph builder — walks a parsed SELECT (with optional CTEs) and emits a
FlowGraph of typed nodes and data-flow edges.

Processing order mirrors SQL evaluation:

1. CTEs, in declaration order, each registered before the next is processed
2. FROM: table-source nodes (or reuse of an earlier CTE's result node)
3. JOINs: join nodes connecting the chain so far with the joined table
4. WHERE: filter node
5. GROUP BY: aggregation node
6. SELECT list: CTE result node or the final output node
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlflow.core.errors import DialectError
from sqlflow.core.expressions import (
    expr_to_sql,
    extract_aggregates,
    extract_column_refs,
)
from sqlflow.core.models import (
    AggregationData,
    BuildError,
    CTEData,
    CTEGroupData,
    ColumnRef,
    FilterData,
    FlowEdge,
    FlowGraph,
    FlowNode,
    JoinData,
    OutputData,
    SchemaTable,
    TableSourceData,
)
from sqlflow.core.parser import DEFAULT_DIALECT, parse_statement, resolve_dialect
from sqlflow.core.statement import (
    FromEntry,
    SelectStatement,
    WithStatement,
    to_statement,
)

logger = logging.getLogger(__name__)

UNSUPPORTED_STATEMENT = "Only SELECT queries can be visualized."

# Key for column references written without a table prefix
UNQUALIFIED = "__unqualified__"

BuildResult = Union[FlowGraph, BuildError]


class FlowGraphBuilder:
    """Accumulates nodes and edges for one query.

    An instance owns all of its state (node counter, CTE and color
    registries) and is meant to be used for a single query.
    """

    def __init__(
        self,
        schema: Optional[list[SchemaTable]] = None,
        dialect: Optional[str] = DEFAULT_DIALECT,
    ) -> None:
        self.dialect = dialect
        self.nodes: list[FlowNode] = []
        self.edges: list[FlowEdge] = []
        self._edge_ids: set[str] = set()
        self._node_counter = 0
        self._schema_map: dict[str, SchemaTable] = {t.name: t for t in schema or []}
        self._schema_map_lower: dict[str, SchemaTable] = {
            t.name.lower(): t for t in schema or []
        }
        # CTE name -> id of its result node
        self._cte_registry: dict[str, str] = {}
        # table/CTE name or alias -> color palette index
        self._table_color_map: dict[str, int] = {}
        self._table_color_counter = 0
        # qualifier -> referenced column names, for the SELECT being processed
        self._current_refs: dict[str, set[str]] = {}
        self._current_show_all = False
        # id of the CTE group being filled, None outside CTE bodies
        self._current_cte_group_id: Optional[str] = None

    # ── bookkeeping ──

    def _next_id(self, prefix: str) -> str:
        node_id = f"{prefix}_{self._node_counter}"
        self._node_counter += 1
        return node_id

    def _next_color(self) -> int:
        color = self._table_color_counter
        self._table_color_counter += 1
        return color

    def _add_node(self, node: FlowNode) -> str:
        if self._current_cte_group_id and node.data.kind != "cte-group":
            node.parent_cte_id = self._current_cte_group_id
        self.nodes.append(node)
        logger.debug("node %s (%s) parent=%s", node.id, node.data.kind, node.parent_cte_id)
        return node.id

    def _add_edge(
        self,
        source: str,
        target: str,
        columns: Optional[list[str]] = None,
        label: Optional[str] = None,
        animated: Optional[bool] = True,
    ) -> None:
        # two edges between the same pair (a CTE joined to itself) get a suffix
        edge_id = base_id = f"e_{source}_{target}"
        suffix = 1
        while edge_id in self._edge_ids:
            edge_id = f"{base_id}_{suffix}"
            suffix += 1
        self._edge_ids.add(edge_id)

        self.edges.append(
            FlowEdge(
                id=edge_id,
                source=source,
                target=target,
                columns=columns,
                label=label,
                animated=animated,
            )
        )

    def _sql(self, expr: exp.Expression) -> str:
        return expr_to_sql(expr, self.dialect)

    # ── schema lookups ──

    def _schema_table(self, table_name: str) -> Optional[SchemaTable]:
        table = self._schema_map.get(table_name)
        if table is None:
            table = self._schema_map_lower.get(table_name.lower())
        return table

    def _schema_columns(self, table_name: str) -> list[ColumnRef]:
        """Column info from the schema for a table; empty if unknown."""
        table = self._schema_table(table_name)
        if table is None:
            return []
        return [
            ColumnRef(
                name=col.name,
                source_table=table_name,
                source_column=col.name,
                data_type=col.data_type or None,
            )
            for col in table.columns
        ]

    # ── reference collection ──

    def _collect_referenced_columns(self, select: SelectStatement) -> None:
        """Record which columns the statement uses, keyed by qualifier.

        Walks the SELECT list, JOIN ON conditions, WHERE, GROUP BY and
        ORDER BY. An unqualified ``*`` anywhere sets the show-all flag and
        stops collection; ``t.*`` marks only qualifier ``t``.
        """
        self._current_refs = {}
        self._current_show_all = False

        expressions: list[exp.Expression] = []
        for item in select.columns:
            if isinstance(item.expr, exp.Star):
                self._current_show_all = True
                return
            expressions.append(item.expr)
        expressions.extend(e.join.on for e in select.from_entries if e.join and e.join.on)
        if select.where is not None:
            expressions.append(select.where)
        expressions.extend(select.group_by)
        expressions.extend(select.order_by)

        for expression in expressions:
            for ref in extract_column_refs(expression):
                if ref.column == "*":
                    if ref.table is None:
                        self._current_show_all = True
                        return
                    self._current_refs[ref.table] = {"*"}
                    continue
                key = ref.table or UNQUALIFIED
                self._current_refs.setdefault(key, set()).add(ref.column)

    def _filter_columns(
        self,
        columns: list[ColumnRef],
        table_name: str,
        alias: Optional[str],
    ) -> list[ColumnRef]:
        """Keep only the schema columns the current statement references."""
        if self._current_show_all:
            return columns

        by_alias = self._current_refs.get(alias, set()) if alias else set()
        by_name = self._current_refs.get(table_name, set())
        unqualified = self._current_refs.get(UNQUALIFIED, set())

        if "*" in by_alias or "*" in by_name:
            return columns

        return [
            col
            for col in columns
            if col.name in by_alias or col.name in by_name or col.name in unqualified
        ]

    # ── statements ──

    def process_cte(self, name: str, select: SelectStatement) -> None:
        """Process one CTE body and register its result node under ``name``.

        The nodes of the body are tagged with the id of a new cte-group
        container; the result node itself sits outside the group.
        """
        color_index = self._next_color()
        self._table_color_map[name] = color_index

        group_id = self._next_id("cte_group")
        self._add_node(
            FlowNode(
                id=group_id,
                data=CTEGroupData(cte_name=name, color_index=color_index),
            )
        )

        self._current_cte_group_id = group_id
        try:
            inner_last_id = self._process_select_inner(select)
        finally:
            self._current_cte_group_id = None

        cte_id = self._next_id("cte")
        self._add_node(
            FlowNode(
                id=cte_id,
                data=CTEData(
                    cte_name=name,
                    output_columns=self._resolve_select_columns(select),
                    has_where=select.where is not None,
                    has_group_by=bool(select.group_by),
                    color_index=color_index,
                ),
            )
        )
        if inner_last_id:
            self._add_edge(inner_last_id, cte_id)

        self._cte_registry[name] = cte_id
        logger.debug("registered CTE %s -> %s", name, cte_id)

    def process_select(self, select: SelectStatement) -> None:
        """Process the main query and add the output node."""
        last_id = self._process_select_inner(select)

        output_columns = self._resolve_select_columns(select)
        order_by = (
            ", ".join(self._sql(o) for o in select.order_by) if select.order_by else None
        )

        limit = None
        if isinstance(select.limit, exp.Literal) and select.limit.is_int:
            limit = int(select.limit.name)

        output_id = self._next_id("output")
        self._add_node(
            FlowNode(
                id=output_id,
                data=OutputData(
                    columns=output_columns,
                    order_by=order_by,
                    limit=limit,
                    table_color_map=dict(self._table_color_map),
                ),
            )
        )
        if last_id:
            self._add_edge(last_id, output_id, columns=[c.name for c in output_columns])

    def _process_select_inner(self, select: SelectStatement) -> Optional[str]:
        """FROM, JOINs, WHERE and GROUP BY; returns the last node of the chain."""
        self._collect_referenced_columns(select)

        last_id: Optional[str] = None
        if select.from_entries:
            last_id = self._process_from(select.from_entries)

        if select.where is not None:
            filter_id = self._next_id("filter")
            self._add_node(
                FlowNode(id=filter_id, data=FilterData(condition=self._sql(select.where)))
            )
            if last_id:
                self._add_edge(last_id, filter_id)
            last_id = filter_id

        if select.group_by:
            aggregates: list[str] = []
            for item in select.columns:
                aggregates.extend(extract_aggregates(item.expr, self.dialect))

            agg_id = self._next_id("agg")
            self._add_node(
                FlowNode(
                    id=agg_id,
                    data=AggregationData(
                        group_by_columns=[self._sql(g) for g in select.group_by],
                        aggregates=list(dict.fromkeys(aggregates)),
                    ),
                )
            )
            if last_id:
                self._add_edge(last_id, agg_id)
            last_id = agg_id

        return last_id

    def _process_from(self, entries: list[FromEntry]) -> Optional[str]:
        last_id: Optional[str] = None

        for entry in entries:
            table_name = entry.table_name
            alias = entry.alias

            if table_name in self._cte_registry:
                current_id = self._cte_registry[table_name]
                if alias:
                    cte_color = self._table_color_map.get(table_name)
                    if cte_color is not None:
                        self._table_color_map[alias] = cte_color
            else:
                current_id = self._add_table_source(table_name, alias)

            if entry.join is not None and last_id:
                join_id = self._next_id("join")
                join_type = entry.join.join_type.replace(" JOIN", "").strip() or "INNER"
                on = entry.join.on
                condition = self._sql(on) if on is not None else ""
                condition_refs = [r.column for r in extract_column_refs(on)] if on is not None else []

                self._add_node(
                    FlowNode(id=join_id, data=JoinData(join_type=join_type, condition=condition))
                )
                self._add_edge(last_id, join_id, columns=condition_refs)
                self._add_edge(current_id, join_id, columns=list(condition_refs))
                last_id = join_id
            else:
                last_id = current_id

        return last_id

    def _add_table_source(self, table_name: str, alias: Optional[str]) -> str:
        color_index = self._table_color_map.get(table_name)
        if color_index is None:
            color_index = self._next_color()
            self._table_color_map[table_name] = color_index
        if alias:
            self._table_color_map[alias] = color_index

        columns = self._filter_columns(self._schema_columns(table_name), table_name, alias)
        return self._add_node(
            FlowNode(
                id=self._next_id("table"),
                data=TableSourceData(
                    table_name=table_name,
                    alias=alias,
                    columns=columns,
                    color_index=color_index,
                ),
            )
        )

    def _resolve_select_columns(self, select: SelectStatement) -> list[ColumnRef]:
        """Turn SELECT list items into output ColumnRefs, in order."""
        columns: list[ColumnRef] = []

        for item in select.columns:
            expr = item.expr
            if isinstance(expr, exp.Star):
                columns.append(ColumnRef(name=item.alias or "*"))
            elif isinstance(expr, exp.Column):
                star = isinstance(expr.this, exp.Star)
                column_name = "*" if star else expr.name
                columns.append(
                    ColumnRef(
                        name=item.alias or column_name,
                        source_table=expr.table or None,
                        source_column=column_name,
                    )
                )
            else:
                refs = extract_column_refs(expr)
                first = refs[0] if refs else None
                columns.append(
                    ColumnRef(
                        name=item.alias or self._sql(expr),
                        source_table=first.table if first else None,
                        source_column=first.column if first else None,
                    )
                )

        return columns

    def build(self) -> FlowGraph:
        return FlowGraph(nodes=self.nodes, edges=self.edges)


def build(
    ast: exp.Expression,
    schema: Optional[list[SchemaTable]] = None,
    dialect: Optional[str] = DEFAULT_DIALECT,
) -> BuildResult:
    """Build a FlowGraph from one parsed statement.

    Args:
        ast: A sqlglot expression, normally from ``parse_statement``.
        schema: Optional table metadata, used to list (and type) the columns
            of table-source nodes.
        dialect: Dialect used to render expression text in node labels.

    Returns:
        The FlowGraph, or a BuildError for anything other than a SELECT
        (optionally wrapped in WITH).
    """
    statement = to_statement(ast)
    if statement is None:
        return BuildError(error=UNSUPPORTED_STATEMENT)

    builder = FlowGraphBuilder(schema, dialect=dialect)

    if isinstance(statement, WithStatement):
        if statement.recursive:
            logger.debug("WITH RECURSIVE is processed as a plain WITH clause")
        for binding in statement.bindings:
            builder.process_cte(binding.alias, binding.statement)
        builder.process_select(statement.body)
    else:
        builder.process_select(statement)

    graph = builder.build()
    logger.info("built flow graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges))
    return graph


def sql_to_flow_graph(
    sql: str,
    schema: Optional[list[SchemaTable]] = None,
    dialect: Optional[str] = None,
) -> BuildResult:
    """Parse a SQL query and build its FlowGraph.

    Parse failures (including input with more than one statement) are
    returned as ``BuildError("Parse error: ...")`` and an unsupported dialect
    as ``BuildError("Unknown dialect: ...")``, so the caller has a single
    error path.
    """
    try:
        sqlglot_dialect = resolve_dialect(dialect)
    except DialectError as e:
        return BuildError(error=str(e))

    try:
        ast = parse_statement(sql, dialect=dialect)
    except SqlglotError as e:
        logger.info("parse failed: %s", e)
        return BuildError(error=f"Parse error: {e}")
    return build(ast, schema, dialect=sqlglot_dialect)
