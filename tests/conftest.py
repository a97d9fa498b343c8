"""Shared fixtures for the sqlflow tests."""

import pytest

from sqlflow.config import get_settings
from sqlflow.core.models import SchemaColumn, SchemaTable


def _table(name, *columns):
    return SchemaTable(
        name=name,
        columns=[SchemaColumn(name=col, data_type=dtype) for col, dtype in columns],
    )


@pytest.fixture
def ecommerce_schema():
    """Subset of an e-commerce schema: customers, orders, products."""
    return [
        _table(
            "customers",
            ("id", "integer"),
            ("email", "character varying"),
            ("name", "character varying"),
            ("tier", "character varying"),
        ),
        _table(
            "orders",
            ("id", "integer"),
            ("customer_id", "integer"),
            ("status", "character varying"),
            ("total", "numeric"),
        ),
        _table(
            "products",
            ("id", "integer"),
            ("name", "character varying"),
            ("price", "numeric"),
        ),
    ]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read SQLFLOW_* variables in every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
