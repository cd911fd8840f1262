"""Export CLI commands.

Exports go through the same dispatcher and worker as the API; the command
waits for the operation to finish and optionally copies the file out.
"""

import asyncio
from datetime import date
from pathlib import Path

import typer

export_app = typer.Typer()


@export_app.command("run")
def export_run(
    username: str = typer.Option(..., "--user", help="Owner of the records to export"),
    output_format: str = typer.Option("csv", "--format", help="Output format (csv, json, excel, pdf)"),
    data_type: str = typer.Option(
        "transactions",
        "--type",
        help="Data type (transactions, budgets, goals, categories, all)",
    ),
    start: str | None = typer.Option(None, "--start", help="Start of date range (YYYY-MM-DD)"),
    end: str | None = typer.Option(None, "--end", help="End of date range (YYYY-MM-DD)"),
    output: Path | None = typer.Option(None, "--output", help="Copy the finished file to this path"),
) -> None:
    """Export a user's records to a file."""
    asyncio.run(_export_run(username, output_format, data_type, start, end, output))


async def _export_run(
    username: str,
    output_format: str,
    data_type: str,
    start: str | None,
    end: str | None,
    output: Path | None,
) -> None:
    """Async implementation of export."""
    from pydantic import ValidationError

    from finance_transfer.cli.user_cmd import resolve_user_id
    from finance_transfer.core.background import task_runner
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import dispose_engine, get_session_factory, init_engine
    from finance_transfer.lib.jobs import OperationKind, TransferError
    from finance_transfer.schemas.exports import DateRange, ExportRequest
    from finance_transfer.services.transfer_service import build_transfer_services

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        services = build_transfer_services(settings, factory)
        async with factory() as session:
            owner_id = await resolve_user_id(session, username)

        date_range = None
        if start or end:
            date_range = DateRange(
                start=date.fromisoformat(start) if start else None,
                end=date.fromisoformat(end) if end else None,
            )
        try:
            request = ExportRequest(format=output_format, type=data_type, date_range=date_range)
        except ValidationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

        try:
            operation = await services.dispatcher.submit(
                owner_id,
                OperationKind.EXPORT,
                request.type,
                request.format,
                request.to_filters(),
            )
        except TransferError as e:
            typer.echo(f"Error: {e.message}", err=True)
            raise typer.Exit(code=1) from e

        typer.echo(f"Export operation created: {operation.id}")
        typer.echo("Processing...")
        await task_runner.wait(str(operation.id))
        operation = await services.registry.get(operation.id)
        result = operation.result or {}

        typer.echo(f"\nExport {operation.status}:")
        if operation.status != "completed":
            typer.echo(f"  Detail:     {result.get('error', result)}")
            raise typer.Exit(code=1)
        typer.echo(f"  Records:    {result.get('record_count', 0)}")
        typer.echo(f"  File size:  {result.get('size_bytes', 0)} bytes")
        typer.echo(f"  File name:  {result.get('file_name')}")
        for entry in result.get("errors", []):
            typer.echo(f"  Skipped {entry['data_type']}: {entry['reason']}")

        if output is not None:
            access = await services.artifacts.open_for_operation(operation.id, owner_id)
            if not access.ok or access.value is None:
                typer.echo("Error: export file is not available", err=True)
                raise typer.Exit(code=1)
            with output.open("wb") as fh:
                async for chunk in access.value.chunks:
                    fh.write(chunk)
            typer.echo(f"  Written to: {output}")
    finally:
        await dispose_engine()
