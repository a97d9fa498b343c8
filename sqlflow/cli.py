"""CLI entry point for the SQL Flow Visualizer."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from sqlglot.errors import SqlglotError

from sqlflow.config import configure_logging
from sqlflow.core.builder import build
from sqlflow.core.errors import DialectError, LayoutError, SchemaError
from sqlflow.core.lineage import compute_column_lineage, format_lineage
from sqlflow.core.models import BuildError, FlowGraph, SchemaTable
from sqlflow.core.parser import get_supported_dialects, parse_file, resolve_dialect
from sqlflow.core.schema import load_schema
from sqlflow.flow.layout import compute_layout
from sqlflow.flow.render import to_render_payload


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="sqlflow",
        description="SQL Flow Visualizer — Turn SQL queries into data-flow graphs.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ...). Default: SQLFLOW_LOG_LEVEL or WARNING",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- visualize / lineage commands ---
    for name, help_text in (
        ("visualize", "Build the flow graph of the queries in a SQL file"),
        ("lineage", "Print the column lineage of the queries in a SQL file"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", type=str, help="SQL file to analyze")
        sub.add_argument(
            "--schema",
            type=str,
            default=None,
            help="Schema metadata: a .json table list or a file of CREATE TABLE statements",
        )
        sub.add_argument(
            "--dialect",
            type=str,
            default=None,
            help=f"SQL dialect. Supported: {', '.join(get_supported_dialects())}",
        )
        sub.add_argument(
            "--format",
            type=str,
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )
        if name == "visualize":
            sub.add_argument(
                "--layout",
                action="store_true",
                default=False,
                help="Compute node positions with Graphviz (JSON output only)",
            )

    # --- serve command ---
    serve_parser = subparsers.add_parser(
        "serve",
        help="Launch the HTTP API",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )

    # --- dialects command ---
    subparsers.add_parser(
        "dialects",
        help="List supported SQL dialects",
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "dialects":
        _cmd_dialects()
    elif args.command in ("visualize", "lineage"):
        _cmd_analyze(args)
    elif args.command == "serve":
        _cmd_serve(args)


def _cmd_dialects() -> None:
    """List supported dialects."""
    print("Supported SQL dialects:")
    for d in get_supported_dialects():
        print(f"  • {d}")


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _load_inputs(args: argparse.Namespace) -> tuple[list, Optional[list[SchemaTable]]]:
    path = Path(args.file)
    if not path.exists():
        _fail(f"File not found: {path}")

    try:
        resolve_dialect(args.dialect)
    except DialectError as e:
        _fail(str(e))

    schema = None
    if args.schema:
        try:
            schema = load_schema(args.schema, dialect=args.dialect)
        except SchemaError as e:
            _fail(str(e))

    try:
        statements = parse_file(path, dialect=args.dialect)
    except SqlglotError as e:
        _fail(f"Parse error: {e}")
    return statements, schema


def _cmd_analyze(args: argparse.Namespace) -> None:
    """Build (and optionally lay out) the flow graph of every statement in a file."""
    statements, schema = _load_inputs(args)
    dialect = resolve_dialect(args.dialect)
    with_layout = getattr(args, "layout", False)

    results = []
    for index, statement in enumerate(statements, 1):
        graph = build(statement, schema, dialect=dialect)
        if isinstance(graph, BuildError):
            results.append((index, graph, None))
            continue
        positions = None
        if with_layout and args.format == "json":
            try:
                positions = asyncio.run(compute_layout(graph))
            except LayoutError as e:
                _fail(str(e))
        results.append((index, graph, positions))

    if args.format == "json":
        output = []
        for index, graph, positions in results:
            if isinstance(graph, BuildError):
                output.append({"statement": index, "error": graph.error})
            elif args.command == "lineage":
                lineage = compute_column_lineage(graph)
                output.append({"statement": index, "lineage": [e.to_json() for e in lineage]})
            else:
                payload = to_render_payload(graph, positions, compute_column_lineage(graph))
                output.append({"statement": index, **payload})
        print(json.dumps(output, indent=2))
    else:
        for index, graph, _ in results:
            _print_text_report(index, graph, lineage_only=args.command == "lineage")


def _print_text_report(index: int, graph, lineage_only: bool = False) -> None:
    """Print a human-readable flow report for one statement."""
    print(f"\n── Statement {index} ──")
    if isinstance(graph, BuildError):
        print(f"   ⚠️  {graph.error}")
        return

    if not lineage_only:
        _print_nodes(graph)

    print("\n🔬 Column lineage:")
    for line in format_lineage(compute_column_lineage(graph)):
        print(f"   {line}")
    print()


def _describe(data) -> str:
    if data.kind == "table-source":
        return data.table_name + (f" AS {data.alias}" if data.alias else "")
    if data.kind in ("cte", "cte-group"):
        return data.cte_name
    if data.kind == "join":
        return f"{data.join_type} ON {data.condition}" if data.condition else data.join_type
    if data.kind == "filter":
        return data.condition
    if data.kind == "aggregation":
        return ", ".join(data.group_by_columns + data.aggregates)
    return ", ".join(c.name for c in data.columns)


def _print_nodes(graph: FlowGraph) -> None:
    print(f"📊 Nodes: {len(graph.nodes)}")
    for node in graph.nodes:
        data = node.data
        detail = _describe(data)
        group = f"  (in {node.parent_cte_id})" if node.parent_cte_id else ""
        print(f"   • {node.id:<14} {data.kind:<12} {detail}{group}")

    print(f"\n🔗 Edges: {len(graph.edges)}")
    for edge in graph.edges:
        columns = f"  [{', '.join(edge.columns)}]" if edge.columns else ""
        print(f"   {edge.source} ──▶ {edge.target}{columns}")


def _cmd_serve(args: argparse.Namespace) -> None:
    """Launch the HTTP API server."""
    import uvicorn

    print("\n🚀 SQL Flow Visualizer — HTTP API")
    print(f"   Listening on http://{args.host}:{args.port}\n")

    uvicorn.run(
        "sqlflow.api.server:app",
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
