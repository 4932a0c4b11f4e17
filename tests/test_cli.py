"""Tests for the operator CLI."""

from typer.testing import CliRunner

from bloodbank.cli import app, inventory_table, schema_statements
from bloodbank.core.models import DEFAULT_HOSPITALS, InventoryRecord

runner = CliRunner()


def test_schema_statements_create_table_and_trigger():
    statements = schema_statements()

    assert statements[0] == "DROP TABLE IF EXISTS bloodbank_documents"
    assert statements[1].startswith("CREATE TABLE bloodbank_documents")
    assert "data JSONB NOT NULL" in statements[1]
    assert "PRIMARY KEY (collection_path, doc_id)" in statements[1]
    assert any("pg_notify('bloodbank_documents'" in s for s in statements)
    assert statements[-1].startswith("CREATE TRIGGER bloodbank_documents_changed")


def test_init_db_dry_run_prints_sql():
    result = runner.invoke(app, ["init-db", "--dry-run"])

    assert result.exit_code == 0
    assert "CREATE TABLE bloodbank_documents" in result.output


def test_inventory_table_has_column_per_type():
    records = list(DEFAULT_HOSPITALS) + [InventoryRecord("x", "Clinic", "Goa", {"O+": 1})]

    table = inventory_table(records)

    assert len(table.columns) == 10
    assert table.row_count == 4
