"""SQL parser module — wraps sqlglot for multi-dialect SQL parsing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError

from sqlflow.config import get_settings
from sqlflow.core.errors import DialectError

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "postgres"

# Map user-friendly dialect names to sqlglot dialect identifiers
SUPPORTED_DIALECTS: dict[str, str] = {
    "ansi": "",
    "bigquery": "bigquery",
    "clickhouse": "clickhouse",
    "databricks": "databricks",
    "duckdb": "duckdb",
    "hive": "hive",
    "mysql": "mysql",
    "oracle": "oracle",
    "postgres": "postgres",
    "presto": "presto",
    "redshift": "redshift",
    "snowflake": "snowflake",
    "spark": "spark",
    "sqlite": "sqlite",
    "starrocks": "starrocks",
    "trino": "trino",
    "tsql": "tsql",
}


def get_supported_dialects() -> list[str]:
    """Return a sorted list of supported SQL dialect names."""
    return sorted(SUPPORTED_DIALECTS.keys())


def resolve_dialect(dialect: Optional[str]) -> Optional[str]:
    """Map a user-facing dialect name to the sqlglot identifier.

    ``None`` or an empty string selects the configured default
    (``SQLFLOW_DIALECT``, postgres unless overridden); ``ansi`` maps to
    sqlglot's base dialect.

    Raises:
        DialectError: If the name is not a supported dialect.
    """
    name = (dialect or get_settings().dialect or DEFAULT_DIALECT).lower()
    if name not in SUPPORTED_DIALECTS:
        raise DialectError(f"Unknown dialect: {dialect or name}")
    return SUPPORTED_DIALECTS[name] or None


def parse_statement(sql: str, dialect: Optional[str] = None) -> exp.Expression:
    """Parse exactly one SQL statement into a sqlglot AST.

    Args:
        sql: The SQL string to parse.
        dialect: SQL dialect (e.g., 'postgres', 'bigquery'). None = configured default (postgres).

    Returns:
        The parsed sqlglot Expression.

    Raises:
        sqlglot.errors.ParseError: If the SQL cannot be parsed, is empty or
            holds more than one statement.
        DialectError: If the dialect is not supported.
    """
    statements = parse_sql(sql, dialect=dialect)
    if not statements:
        raise ParseError("No SQL statement found")
    if len(statements) > 1:
        raise ParseError(f"Expected one statement, found {len(statements)}")
    return statements[0]


def parse_sql(
    sql: str,
    dialect: Optional[str] = None,
) -> list[exp.Expression]:
    """Parse a SQL script into a list of sqlglot AST expressions.

    Args:
        sql: The SQL string to parse.
        dialect: SQL dialect (e.g., 'postgres', 'bigquery'). None = configured default (postgres).

    Returns:
        A list of parsed sqlglot Expression objects.

    Raises:
        sqlglot.errors.ParseError: If the SQL cannot be parsed.
    """
    statements = sqlglot.parse(sql, read=resolve_dialect(dialect))

    # Filter out None results (can happen with empty statements)
    parsed = [stmt for stmt in statements if stmt is not None]
    logger.debug("parsed %d statement(s)", len(parsed))
    return parsed


def parse_file(
    file_path: str | Path,
    dialect: Optional[str] = None,
) -> list[exp.Expression]:
    """Parse a SQL file into a list of sqlglot AST expressions.

    Args:
        file_path: Path to the SQL file.
        dialect: SQL dialect (e.g., 'postgres', 'bigquery'). None = configured default (postgres).

    Returns:
        A list of parsed sqlglot Expression objects.
    """
    path = Path(file_path)
    sql_content = path.read_text(encoding="utf-8")
    return parse_sql(sql_content, dialect=dialect)
