# shopcore/cli.py
"""
Admin command line.

    shopcore init-db
    shopcore migrate-order-state up|down
    shopcore export product --format xlsx --email admin@example.com
    shopcore retry-blob-deletions
"""
from typing import Optional

import typer
from sqlmodel import Session

from shopcore.core.errors import ShopError
from shopcore.core.logging_setup import configure_logging
from shopcore.database import create_db_and_tables, get_engine, register_models
from shopcore.migrations import order_state_type
from shopcore.repositories.order_repo import OrderRepository
from shopcore.repositories.product_repo import ProductRepository
from shopcore.repositories.user_repo import UserRepository
from shopcore.schemas.export import ExportEntity, ExportFormat
from shopcore.services.export_service import ExportService
from shopcore.services.product_service import ProductService


app = typer.Typer(help="shopcore admin commands", no_args_is_help=True)


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL")) -> None:
    configure_logging(log_level)
    register_models()


@app.command("init-db")
def init_db() -> None:
    """Create all tables that do not exist yet."""
    create_db_and_tables()
    typer.echo("tables ready")


@app.command("migrate-order-state")
def migrate_order_state(direction: str = typer.Argument("up", help="up or down")) -> None:
    """Convert orders.state between text and integer codes."""
    if direction not in ("up", "down"):
        raise typer.BadParameter("direction must be 'up' or 'down'")
    try:
        count = order_state_type.run(get_engine(), direction)  # type: ignore[arg-type]
    except ShopError as exc:
        typer.echo(f"migration rolled back: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{direction}: rewrote {count} orders")


@app.command("export")
def export(
    entity: ExportEntity = typer.Argument(..., help="order or product"),
    fmt: ExportFormat = typer.Option(ExportFormat.CSV, "--format", "-f"),
    email: str = typer.Option(..., "--email", "-e", help="Recipient user email"),
) -> None:
    """Export orders or products and mail the file to a user."""
    service = ExportService(ProductRepository(), OrderRepository(), UserRepository())
    with Session(get_engine()) as session:
        try:
            result = service.export_for_email(session, email, entity, fmt)
        except ShopError as exc:
            typer.echo(f"export failed: {exc}", err=True)
            raise typer.Exit(code=1)
    typer.echo(f"sent {result.row_count} {entity.value} rows to {email}")


@app.command("retry-blob-deletions")
def retry_blob_deletions(limit: int = typer.Option(100, min=1)) -> None:
    """Retry removing image blobs whose cleanup previously failed."""
    service = ProductService(ProductRepository())
    with Session(get_engine()) as session:
        removed = service.retry_pending_blob_deletions(session, limit=limit)
    typer.echo(f"removed {removed} pending blobs")


if __name__ == "__main__":
    app()
