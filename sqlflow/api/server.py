"""FastAPI backend for the SQL flow visualizer."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from sqlflow import __version__
from sqlflow.core.builder import sql_to_flow_graph
from sqlflow.core.errors import LayoutError, SchemaError
from sqlflow.core.lineage import compute_column_lineage
from sqlflow.core.models import BuildError, SchemaTable
from sqlflow.core.parser import get_supported_dialects
from sqlflow.core.schema import schema_from_ddl
from sqlflow.flow.layout import compute_layout
from sqlflow.flow.render import to_render_payload

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SQL Flow Visualizer",
    description="Turn SQL SELECT queries into data-flow graphs with column lineage",
    version=__version__,
)

# CORS for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class VisualizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sql: str
    dialect: Optional[str] = None
    schema_tables: Optional[list[SchemaTable]] = Field(default=None, alias="schema")
    ddl: Optional[str] = None
    layout: bool = True
    # echoed back so clients can drop responses to superseded requests
    request_id: Optional[str] = None


def _resolve_schema(request: VisualizeRequest) -> Optional[list[SchemaTable]]:
    if request.schema_tables is not None:
        return request.schema_tables
    if request.ddl:
        try:
            return schema_from_ddl(request.ddl, dialect=request.dialect)
        except SchemaError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
    return None


@app.get("/api/dialects")
async def list_dialects():
    """Return the list of supported SQL dialects."""
    return {"dialects": get_supported_dialects()}


@app.post("/api/visualize")
async def visualize(request: VisualizeRequest):
    """Build the flow graph for a query, lay it out and trace its lineage.

    Build errors (non-SELECT statements, parse failures) are returned as
    ``{"error": ...}`` with status 200 so the client can show them inline.
    """
    schema = _resolve_schema(request)
    graph = sql_to_flow_graph(request.sql, schema=schema, dialect=request.dialect)
    if isinstance(graph, BuildError):
        return {"error": graph.error, "request_id": request.request_id}

    positions = None
    if request.layout:
        try:
            positions = await compute_layout(graph)
        except LayoutError as e:
            logger.error("layout failed: %s", e)
            raise HTTPException(status_code=500, detail=str(e)) from e

    payload = to_render_payload(graph, positions, compute_column_lineage(graph))
    payload["request_id"] = request.request_id
    payload["stats"] = {
        "total_nodes": len(graph.nodes),
        "total_edges": len(graph.edges),
        "cte_groups": len(graph.nodes_of_kind("cte-group")),
    }
    return payload


@app.post("/api/lineage")
async def lineage(request: VisualizeRequest):
    """Return only the column lineage of a query."""
    graph = sql_to_flow_graph(request.sql, schema=_resolve_schema(request), dialect=request.dialect)
    if isinstance(graph, BuildError):
        return {"error": graph.error, "request_id": request.request_id}
    return {
        "lineage": [entry.to_json() for entry in compute_column_lineage(graph)],
        "request_id": request.request_id,
    }
