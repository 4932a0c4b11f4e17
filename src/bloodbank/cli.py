"""CLI for Blood Bank document store management."""

import psycopg
import typer
from psycopg.types.json import Jsonb
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from bloodbank.config import get_settings
from bloodbank.core.models import BLOOD_TYPE_CODES, DEFAULT_HOSPITALS, InventoryRecord
from bloodbank.db.schemas import (
    NOTIFY_FUNCTION_SQL,
    NOTIFY_TRIGGER_SQL,
    InventoryDocument,
)

app = typer.Typer(
    name="bloodbank",
    help="Blood Bank CLI - manage the Lakebase document store",
    add_completion=False,
)
console = Console()


def get_local_connection() -> psycopg.Connection:
    """Get a database connection using local credentials."""
    settings = get_settings()
    lakebase = settings.lakebase
    return psycopg.connect(
        host=lakebase.host,
        port=lakebase.port,
        dbname=lakebase.database,
        user=lakebase.user,
        password=lakebase.get_password(settings.databricks.host or None),
        sslmode=lakebase.sslmode,
    )


def schema_statements() -> list[str]:
    """DDL for the document table, its index and the change trigger."""
    dialect = postgresql.dialect()
    table = InventoryDocument.__table__
    statements = [
        "DROP TABLE IF EXISTS bloodbank_documents",
        str(CreateTable(table).compile(dialect=dialect)).strip(),
    ]
    statements.extend(
        str(CreateIndex(index).compile(dialect=dialect)).strip() for index in table.indexes
    )
    statements.append(NOTIFY_FUNCTION_SQL.strip())
    statements.append(NOTIFY_TRIGGER_SQL.strip())
    return statements


def _connection_panel() -> None:
    settings = get_settings()
    console.print(Panel.fit(
        f"[bold]Database:[/bold] {settings.lakebase.database}\n"
        f"[bold]Host:[/bold] {settings.lakebase.host}\n"
        f"[bold]Collection:[/bold] {settings.app.collection_path}",
        title="Lakebase Connection",
    ))


@app.command()
def init_db(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show SQL without executing"),
):
    """Create the document table and its change-notification trigger."""
    statements = schema_statements()
    _connection_panel()

    if dry_run:
        console.print("\n[yellow]Dry run mode - SQL that would be executed:[/yellow]\n")
        for statement in statements:
            console.print(f"{statement};\n")
        return

    console.print("\n[blue]Initializing document store...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)

        console.print("[green]✓ Document store initialized successfully![/green]")
    except Exception as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def seed():
    """Write the default hospital inventory, replacing existing records with the same ids."""
    settings = get_settings()
    path = settings.app.collection_path
    _connection_panel()

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                for record in DEFAULT_HOSPITALS:
                    cur.execute(
                        """
                        INSERT INTO bloodbank_documents (collection_path, doc_id, data)
                        VALUES (%s, %s, %s)
                        ON CONFLICT (collection_path, doc_id)
                        DO UPDATE SET data = EXCLUDED.data, updated_ts = NOW()
                        """,
                        (path, record.id, Jsonb(record.to_document())),
                    )

        console.print(f"[green]✓ Seeded {len(DEFAULT_HOSPITALS)} hospitals[/green]")
    except Exception as e:
        console.print(f"[red]✗ Error seeding inventory: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def clear_db(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Delete every record in the configured collection."""
    settings = get_settings()
    path = settings.app.collection_path
    _connection_panel()

    if not force:
        confirm = typer.confirm(f"\n⚠️  This will DELETE ALL records under {path}. Continue?")
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM bloodbank_documents WHERE collection_path = %s", (path,)
                )
                removed = cur.rowcount

        console.print(f"[green]✓ Removed {removed} records[/green]")
    except Exception as e:
        console.print(f"[red]✗ Error clearing collection: {e}[/red]")
        raise typer.Exit(1)


def inventory_table(records: list[InventoryRecord]) -> Table:
    """Render hospitals as rows with one column per blood type."""
    table = Table(title="Blood Inventory (units)")
    table.add_column("Hospital", style="bold")
    table.add_column("Location")
    for code in BLOOD_TYPE_CODES:
        table.add_column(code, justify="right")

    for record in records:
        table.add_row(
            record.name,
            record.location,
            *(str(record.inventory.get(code, "-")) for code in BLOOD_TYPE_CODES),
        )
    return table


@app.command()
def show():
    """Print current inventory for every hospital."""
    settings = get_settings()
    path = settings.app.collection_path

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT doc_id, data FROM bloodbank_documents
                    WHERE collection_path = %s ORDER BY doc_id
                    """,
                    (path,),
                )
                rows = cur.fetchall()
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(1)

    if not rows:
        console.print(f"[yellow]No records under {path}[/yellow]")
        return

    console.print(inventory_table([InventoryRecord.from_document(r[0], r[1]) for r in rows]))


if __name__ == "__main__":
    app()
