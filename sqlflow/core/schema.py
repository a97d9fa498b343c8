"""Schema metadata input: read table/column metadata from JSON or DDL."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError
from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlflow.core.errors import DialectError, SchemaError
from sqlflow.core.models import SchemaColumn, SchemaTable
from sqlflow.core.parser import parse_sql, resolve_dialect

logger = logging.getLogger(__name__)


def schema_from_json(data: Any) -> list[SchemaTable]:
    """Validate a list of ``{name, columns: [{name, dataType, ...}]}`` objects."""
    if not isinstance(data, list):
        raise SchemaError("schema JSON must be a list of tables")
    try:
        return [SchemaTable.model_validate(table) for table in data]
    except ValidationError as e:
        raise SchemaError(f"invalid schema: {e}") from e


def load_schema_json(path: str | Path) -> list[SchemaTable]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise SchemaError(f"cannot read schema file {path}: {e}") from e
    return schema_from_json(data)


def _name(node: exp.Expression) -> str:
    if isinstance(node, exp.Ordered):
        node = node.this
    return node.name


def _reference_target(reference: exp.Expression) -> tuple[Optional[str], Optional[str]]:
    """Table and first column of a ``REFERENCES table (column)`` clause."""
    target = reference.this
    if isinstance(target, exp.Schema):
        table = target.this.name if target.this is not None else None
        columns = [_name(c) for c in target.expressions]
        return table, columns[0] if columns else None
    if isinstance(target, exp.Table):
        return target.name, None
    return None, None


def _column(column_def: exp.ColumnDef, dialect: Optional[str]) -> SchemaColumn:
    data_type = column_def.args.get("kind")
    column = SchemaColumn(
        name=column_def.name,
        data_type=data_type.sql(dialect=dialect).lower() if data_type is not None else "",
    )
    for constraint in column_def.args.get("constraints") or []:
        kind = constraint.args.get("kind")
        if isinstance(kind, exp.NotNullColumnConstraint) and not kind.args.get("allow_null"):
            column.nullable = False
        elif isinstance(kind, exp.PrimaryKeyColumnConstraint):
            column.is_primary_key = True
            column.nullable = False
        elif isinstance(kind, exp.DefaultColumnConstraint):
            column.default_value = kind.this.sql(dialect=dialect)
        elif isinstance(kind, exp.Reference):
            column.is_foreign_key = True
            column.foreign_table, column.foreign_column = _reference_target(kind)
    return column


def _apply_table_constraint(table: SchemaTable, constraint: exp.Expression) -> None:
    if isinstance(constraint, exp.Constraint):
        for inner in constraint.expressions:
            _apply_table_constraint(table, inner)
    elif isinstance(constraint, exp.PrimaryKey):
        for name in (_name(e) for e in constraint.expressions):
            column = table.get_column(name)
            if column is not None:
                column.is_primary_key = True
                column.nullable = False
    elif isinstance(constraint, exp.ForeignKey):
        reference = constraint.args.get("reference")
        foreign_table, foreign_column = (
            _reference_target(reference) if reference is not None else (None, None)
        )
        for name in (_name(e) for e in constraint.expressions):
            column = table.get_column(name)
            if column is not None:
                column.is_foreign_key = True
                column.foreign_table = foreign_table
                column.foreign_column = foreign_column


def schema_from_ddl(ddl: str, dialect: Optional[str] = None) -> list[SchemaTable]:
    """Derive table metadata from ``CREATE TABLE`` statements.

    Other statements in the script are ignored.

    Raises:
        SchemaError: If the DDL cannot be parsed or the dialect is unknown.
    """
    try:
        sqlglot_dialect = resolve_dialect(dialect)
        statements = parse_sql(ddl, dialect=dialect)
    except DialectError as e:
        raise SchemaError(str(e)) from e
    except SqlglotError as e:
        raise SchemaError(f"cannot parse DDL: {e}") from e

    tables: list[SchemaTable] = []
    for statement in statements:
        if not isinstance(statement, exp.Create):
            continue
        if str(statement.args.get("kind") or "").upper() != "TABLE":
            continue
        schema = statement.this
        if not isinstance(schema, exp.Schema) or not isinstance(schema.this, exp.Table):
            continue

        table = SchemaTable(name=schema.this.name)
        for item in schema.expressions:
            if isinstance(item, exp.ColumnDef):
                table.columns.append(_column(item, sqlglot_dialect))
        for item in schema.expressions:
            if not isinstance(item, exp.ColumnDef):
                _apply_table_constraint(table, item)
        tables.append(table)

    logger.debug("schema from DDL: %d table(s)", len(tables))
    return tables


def load_schema(path: str | Path, dialect: Optional[str] = None) -> list[SchemaTable]:
    """Read schema metadata from a ``.json`` file or a DDL script."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        return load_schema_json(path)
    try:
        ddl = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"cannot read schema file {path}: {e}") from e
    return schema_from_ddl(ddl, dialect=dialect)
