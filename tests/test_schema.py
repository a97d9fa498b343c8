"""Tests for schema metadata input."""

import json

import pytest

from sqlflow.core.errors import SchemaError
from sqlflow.core.schema import load_schema, schema_from_ddl, schema_from_json

DDL = """
CREATE TABLE customers (
    id SERIAL PRIMARY KEY,
    email VARCHAR(255) NOT NULL,
    tier VARCHAR(20) DEFAULT 'free'
);

CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    total NUMERIC(10, 2)
);

CREATE TABLE order_items (
    order_id INTEGER,
    product_id INTEGER,
    quantity INTEGER,
    PRIMARY KEY (order_id, product_id),
    FOREIGN KEY (order_id) REFERENCES orders (id)
);

CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100;
"""


@pytest.fixture
def tables():
    return {t.name: t for t in schema_from_ddl(DDL)}


class TestSchemaFromDDL:
    def test_only_create_table_is_read(self, tables):
        assert list(tables) == ["customers", "orders", "order_items"]

    def test_columns_in_order(self, tables):
        assert [c.name for c in tables["orders"].columns] == ["id", "customer_id", "total"]

    def test_data_types(self, tables):
        assert tables["customers"].get_column("email").data_type == "varchar(255)"
        assert "int" in tables["orders"].get_column("id").data_type

    def test_primary_key(self, tables):
        column = tables["customers"].get_column("id")
        assert column.is_primary_key
        assert not column.nullable

    def test_not_null_and_default(self, tables):
        assert tables["customers"].get_column("email").nullable is False
        tier = tables["customers"].get_column("tier")
        assert tier.nullable is True
        assert tier.default_value == "'free'"

    def test_inline_reference(self, tables):
        column = tables["orders"].get_column("customer_id")
        assert column.is_foreign_key
        assert (column.foreign_table, column.foreign_column) == ("customers", "id")

    def test_table_constraints(self, tables):
        items = tables["order_items"]
        assert items.get_column("order_id").is_primary_key
        assert items.get_column("product_id").is_primary_key
        assert not items.get_column("quantity").is_primary_key

        order_id = items.get_column("order_id")
        assert order_id.is_foreign_key
        assert (order_id.foreign_table, order_id.foreign_column) == ("orders", "id")

    def test_unknown_dialect(self):
        with pytest.raises(SchemaError, match="nosuch"):
            schema_from_ddl(DDL, dialect="nosuch")

    def test_invalid_ddl(self):
        with pytest.raises(SchemaError):
            schema_from_ddl("CREATE TABLE t (id INT")


class TestSchemaFromJSON:
    def test_camel_case_keys(self):
        tables = schema_from_json(
            [{"name": "t", "columns": [{"name": "id", "dataType": "int", "isPrimaryKey": True}]}]
        )
        column = tables[0].get_column("id")
        assert column.data_type == "int"
        assert column.is_primary_key

    def test_not_a_list(self):
        with pytest.raises(SchemaError, match="list"):
            schema_from_json({"name": "t"})

    def test_invalid_table(self):
        with pytest.raises(SchemaError):
            schema_from_json([{"columns": []}])


class TestLoadSchema:
    def test_json_file(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps([{"name": "t", "columns": [{"name": "a"}]}]))
        assert [t.name for t in load_schema(path)] == ["t"]

    def test_ddl_file(self, tmp_path):
        path = tmp_path / "schema.sql"
        path.write_text(DDL)
        assert len(load_schema(path)) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(SchemaError):
            load_schema(tmp_path / "nope.sql")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text("{not json")
        with pytest.raises(SchemaError):
            load_schema(path)
