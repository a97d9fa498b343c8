"""Typed view of the sqlglot AST shapes consumed by the graph builder.

sqlglot trees are loosely shaped: the same ``Select`` node carries the WITH
clause, the FROM clause and the joins as optional args. This module converts
the parts the builder visits into closed models so the builder never has to
guess at node shapes. Anything not recognised is skipped here, with a debug
log line, instead of being passed along.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

logger = logging.getLogger(__name__)

StatementKind = Literal["select", "with", "other"]


class _AstModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


class SelectItem(_AstModel):
    """One entry of the SELECT list."""

    expr: exp.Expression
    alias: Optional[str] = None


class JoinClause(_AstModel):
    """Join marker of a FROM entry.

    ``join_type`` is the join keyword text as written, e.g. ``"LEFT JOIN"``.
    """

    join_type: str = "INNER JOIN"
    on: Optional[exp.Expression] = None


class FromEntry(_AstModel):
    """A table reference in the FROM clause, in source order."""

    table_name: str
    alias: Optional[str] = None
    join: Optional[JoinClause] = None


class SelectStatement(_AstModel):
    columns: list[SelectItem] = Field(default_factory=list)
    from_entries: list[FromEntry] = Field(default_factory=list)
    where: Optional[exp.Expression] = None
    group_by: list[exp.Expression] = Field(default_factory=list)
    order_by: list[exp.Expression] = Field(default_factory=list)
    limit: Optional[exp.Expression] = None


class CTEBinding(_AstModel):
    alias: str
    statement: SelectStatement


class WithStatement(_AstModel):
    bindings: list[CTEBinding] = Field(default_factory=list)
    body: SelectStatement
    recursive: bool = False


Statement = Union[SelectStatement, WithStatement]


def _arg_of_type(node: exp.Expression, kind: type[exp.Expression]) -> Optional[exp.Expression]:
    # sqlglot has renamed some arg keys across releases ("from" -> "from_"),
    # so look the clause up by node type rather than by key.
    for value in node.args.values():
        if isinstance(value, kind):
            return value
    return None


def statement_kind(ast: exp.Expression) -> StatementKind:
    """Classify a top-level statement as ``select``, ``with`` or ``other``."""
    if isinstance(ast, exp.Select):
        if _arg_of_type(ast, exp.With) is not None:
            return "with"
        return "select"
    return "other"


def join_type_text(join: exp.Join) -> str:
    """Render the join keyword the way it reads in SQL, e.g. ``LEFT JOIN``."""
    side = (join.side or "").upper()
    kind = (join.kind or "").upper()
    if kind == "CROSS":
        return "CROSS JOIN"
    if side in ("LEFT", "RIGHT", "FULL"):
        return f"{side} JOIN"
    return "INNER JOIN"


def _is_explicit_join(join: exp.Join) -> bool:
    # "FROM a, b" is parsed as a Join without side, kind or condition
    return bool(
        join.side
        or join.kind
        or join.args.get("on") is not None
        or join.args.get("using")
        or join.args.get("method")
    )


def _using_condition(join: exp.Join, left_name: str, right_name: str) -> Optional[exp.Expression]:
    """Turn ``USING (a, b)`` into ``left.a = right.a AND left.b = right.b``."""
    using = join.args.get("using") or []
    condition: Optional[exp.Expression] = None
    for ident in using:
        name = ident.name
        eq = exp.EQ(
            this=exp.column(name, table=left_name),
            expression=exp.column(name, table=right_name),
        )
        condition = eq if condition is None else exp.and_(condition, eq)
    return condition


def _from_entry(table: exp.Expression, join: Optional[JoinClause] = None) -> Optional[FromEntry]:
    if not isinstance(table, exp.Table) or not table.name:
        logger.debug("skipping unsupported FROM item: %s", type(table).__name__)
        return None
    return FromEntry(table_name=table.name, alias=table.alias or None, join=join)


def _from_entries(select: exp.Select) -> list[FromEntry]:
    entries: list[FromEntry] = []
    from_clause = _arg_of_type(select, exp.From)
    if from_clause is not None:
        first = _from_entry(from_clause.this)
        if first is not None:
            entries.append(first)
        # Older sqlglot releases keep comma-separated tables on the From node
        for extra in from_clause.expressions:
            entry = _from_entry(extra)
            if entry is not None:
                entries.append(entry)

    previous_name = (entries[-1].alias or entries[-1].table_name) if entries else ""
    for join in select.args.get("joins") or []:
        clause = None
        if _is_explicit_join(join):
            table = join.this
            right_name = table.alias_or_name if isinstance(table, exp.Table) else ""
            on = join.args.get("on")
            if on is None and join.args.get("using"):
                on = _using_condition(join, previous_name, right_name)
            clause = JoinClause(join_type=join_type_text(join), on=on)
        entry = _from_entry(join.this, clause)
        if entry is not None:
            entries.append(entry)
            previous_name = entry.alias or entry.table_name
    return entries


def _select_items(select: exp.Select) -> list[SelectItem]:
    items: list[SelectItem] = []
    for projection in select.expressions:
        if isinstance(projection, exp.Alias):
            items.append(SelectItem(expr=projection.this, alias=projection.alias or None))
        else:
            items.append(SelectItem(expr=projection))
    return items


def to_select_statement(select: exp.Select) -> SelectStatement:
    """Convert a sqlglot ``Select`` (ignoring its WITH clause) into a model."""
    where = _arg_of_type(select, exp.Where)
    group = _arg_of_type(select, exp.Group)
    order = _arg_of_type(select, exp.Order)
    limit = _arg_of_type(select, exp.Limit)

    return SelectStatement(
        columns=_select_items(select),
        from_entries=_from_entries(select),
        where=where.this if where is not None else None,
        group_by=list(group.expressions) if group is not None else [],
        order_by=[o.this if isinstance(o, exp.Ordered) else o for o in order.expressions]
        if order is not None
        else [],
        limit=limit.expression if limit is not None else None,
    )


def to_statement(ast: exp.Expression) -> Optional[Statement]:
    """Convert a top-level statement; returns None for unsupported kinds."""
    kind = statement_kind(ast)
    if kind == "other":
        return None

    body = to_select_statement(ast)
    if kind == "select":
        return body

    with_clause = _arg_of_type(ast, exp.With)
    bindings: list[CTEBinding] = []
    for cte in with_clause.expressions:
        inner = cte.this
        if not isinstance(inner, exp.Select):
            logger.debug("skipping CTE %s with non-SELECT body", cte.alias)
            continue
        bindings.append(CTEBinding(alias=cte.alias, statement=to_select_statement(inner)))

    return WithStatement(
        bindings=bindings,
        body=body,
        recursive=bool(with_clause.args.get("recursive")),
    )
