"""Typer CLI root application with serve command."""

import typer

from finance_transfer.core.config import get_settings
from finance_transfer.core.logging import setup_logging

app = typer.Typer(name="finance-transfer", help="Financial records export/import CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "finance_transfer.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from finance_transfer.cli.db_cmd import db_app
    from finance_transfer.cli.export_cmd import export_app
    from finance_transfer.cli.import_cmd import import_app
    from finance_transfer.cli.operations_cmd import operations_app
    from finance_transfer.cli.user_cmd import user_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(user_app, name="user", help="User management commands")
    app.add_typer(export_app, name="export", help="Export records to a file")
    app.add_typer(import_app, name="import", help="Import records from a file")
    app.add_typer(operations_app, name="operations", help="Operation history and retention")


_register_subcommands()
