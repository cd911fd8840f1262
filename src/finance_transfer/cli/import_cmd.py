"""Import CLI commands."""

import asyncio
import json
from pathlib import Path

import typer

import_app = typer.Typer()

_EXTENSION_FORMATS = {".csv": "csv", ".txt": "csv", ".json": "json", ".xlsx": "excel", ".xlsm": "excel"}


def _infer_format(file_path: Path, explicit: str | None) -> str:
    if explicit:
        return explicit
    fmt = _EXTENSION_FORMATS.get(file_path.suffix.lower())
    if fmt is None:
        typer.echo(f"Error: cannot infer format from '{file_path.suffix}'; pass --format", err=True)
        raise typer.Exit(code=1)
    return fmt


def _load_options(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: --options is not valid JSON: {e}", err=True)
        raise typer.Exit(code=1) from e
    if not isinstance(options, dict):
        typer.echo("Error: --options must be a JSON object", err=True)
        raise typer.Exit(code=1)
    return options


@import_app.command("run")
def import_run(
    file_path: Path = typer.Argument(..., help="File to import", exists=True, dir_okay=False, readable=True),
    username: str = typer.Option(..., "--user", help="Owner of the imported records"),
    data_type: str = typer.Option(..., "--type", help="Data type (transactions, budgets, goals, categories)"),
    input_format: str | None = typer.Option(None, "--format", help="csv, json or excel (default: from extension)"),
    options: str | None = typer.Option(None, "--options", help="Import options as a JSON object"),
) -> None:
    """Import records from a file for a user."""
    fmt = _infer_format(file_path, input_format)
    asyncio.run(_import_run(file_path, username, data_type, fmt, _load_options(options)))


async def _import_run(file_path: Path, username: str, data_type: str, fmt: str, options: dict) -> None:
    """Async implementation of import."""
    from finance_transfer.cli.user_cmd import resolve_user_id
    from finance_transfer.core.background import task_runner
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import dispose_engine, get_session_factory, init_engine
    from finance_transfer.lib.jobs import OperationKind, TransferError
    from finance_transfer.services.transfer_service import build_transfer_services

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        services = build_transfer_services(settings, factory)
        async with factory() as session:
            owner_id = await resolve_user_id(session, username)

        try:
            operation = await services.dispatcher.submit(
                owner_id,
                OperationKind.IMPORT,
                data_type,
                fmt,
                options,
                payload=file_path.read_bytes(),
                file_name=file_path.name,
            )
        except TransferError as e:
            typer.echo(f"Error: {e.message}", err=True)
            raise typer.Exit(code=1) from e

        typer.echo(f"Import operation created: {operation.id}")
        typer.echo("Processing...")
        await task_runner.wait(str(operation.id))
        operation = await services.registry.get(operation.id)
        result = operation.result or {}

        typer.echo(f"\nImport {operation.status}:")
        if "error" in result:
            typer.echo(f"  Error:      {result['error']['message']}")
            raise typer.Exit(code=1)
        typer.echo(f"  Records:    {result.get('total_records', 0)}")
        typer.echo(f"  Created:    {result.get('created', 0)}")
        typer.echo(f"  Updated:    {result.get('updated', 0)}")
        typer.echo(f"  Skipped:    {result.get('skipped', 0)}")
        typer.echo(f"  Rejected:   {result.get('rejected', 0)}")
        for error in result.get("errors", [])[:20]:
            typer.echo(f"    #{error['index']}: {error['reason']}")
        if result.get("errors_truncated") or len(result.get("errors", [])) > 20:
            typer.echo("    ...")
    finally:
        await dispose_engine()


@import_app.command("validate")
def import_validate(
    file_path: Path = typer.Argument(..., help="File to check", exists=True, dir_okay=False, readable=True),
    data_type: str = typer.Option(..., "--type", help="Data type (transactions, budgets, goals, categories)"),
    input_format: str | None = typer.Option(None, "--format", help="csv, json or excel (default: from extension)"),
    options: str | None = typer.Option(None, "--options", help="Import options as a JSON object"),
) -> None:
    """Check a file without importing anything."""
    from finance_transfer.core.config import get_settings
    from finance_transfer.lib.jobs import OperationKind, TransferError
    from finance_transfer.services.dispatch_service import check_combination, parse_import_options
    from finance_transfer.services.validation_service import build_validation_report

    fmt = _infer_format(file_path, input_format)
    try:
        checked_type, checked_format = check_combination(OperationKind.IMPORT, data_type, fmt)
        import_options = parse_import_options(_load_options(options))
    except TransferError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e

    report = build_validation_report(
        file_path.read_bytes(),
        checked_type,
        checked_format,
        import_options,
        max_errors=get_settings().import_max_reported_errors,
    )
    typer.echo(report.model_dump_json(indent=2))
    if not report.valid:
        raise typer.Exit(code=1)
