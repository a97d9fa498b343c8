"""Expression helpers: render expression trees and pull out column references
and aggregate calls."""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from sqlglot import exp

from sqlflow.core.parser import DEFAULT_DIALECT

logger = logging.getLogger(__name__)

AGGREGATE_FUNCTIONS = frozenset(
    {
        "count",
        "sum",
        "avg",
        "min",
        "max",
        "array_agg",
        "string_agg",
        # MySQL spelling of string_agg; both parse to exp.GroupConcat
        "group_concat",
        "bool_and",
        "bool_or",
        "json_agg",
        "jsonb_agg",
    }
)

# sqlglot normalises some of the functions above into typed nodes whose
# sql_name() differs from the name written in the query.
_AGGREGATE_NODES = (
    exp.Count,
    exp.Sum,
    exp.Avg,
    exp.Min,
    exp.Max,
    exp.ArrayAgg,
    exp.GroupConcat,
    exp.JSONArrayAgg,
    exp.LogicalAnd,
    exp.LogicalOr,
)

PLACEHOLDER = "(expr)"


class ColumnReference(NamedTuple):
    table: Optional[str]
    column: str


def expr_to_sql(expr: exp.Expression, dialect: Optional[str] = DEFAULT_DIALECT) -> str:
    """Convert an expression node back to SQL text.

    Never raises: the result backs user-facing labels, so a rendering failure
    yields the ``"(expr)"`` placeholder.
    """
    try:
        return expr.sql(dialect=dialect)
    except Exception:
        logger.debug("could not render expression %r", expr, exc_info=True)
        return PLACEHOLDER


def extract_column_refs(expr: exp.Expression) -> list[ColumnReference]:
    """Collect every column reference in an expression, in source order.

    A bare ``*`` (also the one in ``COUNT(*)``) is reported as
    ``(None, "*")`` and a qualified ``t.*`` as ``("t", "*")``.
    """
    refs: list[ColumnReference] = []
    for node in expr.find_all(exp.Column, exp.Star, bfs=False):
        if isinstance(node, exp.Star):
            if isinstance(node.parent, exp.Column):
                continue
            refs.append(ColumnReference(None, "*"))
            continue
        column = "*" if isinstance(node.this, exp.Star) else node.name
        refs.append(ColumnReference(node.table or None, column))
    return refs


def _function_name(node: exp.Func) -> str:
    if isinstance(node, exp.Anonymous):
        return node.name.lower()
    return node.sql_name().lower()


def is_aggregate(node: exp.Expression) -> bool:
    if isinstance(node, _AGGREGATE_NODES):
        return True
    return isinstance(node, exp.Func) and _function_name(node) in AGGREGATE_FUNCTIONS


def extract_aggregates(expr: exp.Expression, dialect: Optional[str] = DEFAULT_DIALECT) -> list[str]:
    """Return the SQL text of every aggregate call, e.g. ``["SUM(amount)"]``."""
    return [
        expr_to_sql(node, dialect)
        for node in expr.find_all(exp.Func, bfs=False)
        if is_aggregate(node)
    ]


def contains_aggregate(expr: exp.Expression) -> bool:
    return any(is_aggregate(node) for node in expr.find_all(exp.Func))
