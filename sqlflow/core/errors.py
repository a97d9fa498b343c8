"""Exception types raised by sqlflow.

Unsupported statements and parse failures are not exceptions: the graph
builder reports them as ``BuildError`` values. The classes here cover the
failures that are meant to stop the caller.
"""

from __future__ import annotations


class SQLFlowError(Exception):
    """Base class for all sqlflow errors."""


class LayoutError(SQLFlowError):
    """The hierarchical layout solver failed to produce a layout."""


class SchemaError(SQLFlowError):
    """Schema metadata could not be read or parsed."""


class DialectError(SQLFlowError, ValueError):
    """The requested SQL dialect is not one of the supported dialects."""
