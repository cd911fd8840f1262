"""Operation history and retention CLI commands."""

import asyncio

import typer

operations_app = typer.Typer()


@operations_app.command("list")
def list_operations(
    username: str = typer.Option(..., "--user", help="Owner whose operations to list"),
    kind: str | None = typer.Option(None, "--kind", help="export or import"),
    page: int = typer.Option(1, "--page", min=1),
    page_size: int = typer.Option(20, "--page-size", min=1, max=100),
) -> None:
    """List a user's operations, newest first."""
    asyncio.run(_list_operations(username, kind, page, page_size))


async def _list_operations(username: str, kind: str | None, page: int, page_size: int) -> None:
    from finance_transfer.cli.user_cmd import resolve_user_id
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import dispose_engine, get_session_factory, init_engine
    from finance_transfer.lib.jobs import OperationKind
    from finance_transfer.services.operation_service import OperationRegistry

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            owner_id = await resolve_user_id(session, username)
        registry = OperationRegistry(factory)
        result = await registry.list(
            owner_id,
            kind=OperationKind(kind) if kind else None,
            page=page,
            page_size=page_size,
        )
        typer.echo(f"{'ID':<38} {'Kind':<7} {'Type':<13} {'Format':<7} {'Status':<10} {'Progress':<12} Created")
        typer.echo("-" * 110)
        for op in result.items:
            total = "?" if op.progress_total is None else op.progress_total
            progress = f"{op.progress_processed}/{total}"
            typer.echo(
                f"{op.id!s:<38} {op.kind:<7} {op.data_type:<13} {op.format:<7} {op.status:<10} "
                f"{progress:<12} {op.created_at:%Y-%m-%d %H:%M}"
            )
        typer.echo(f"\nTotal: {result.total}")
    finally:
        await dispose_engine()


@operations_app.command("sweep")
def sweep(
    operation_days: int | None = typer.Option(
        None,
        "--operation-days",
        min=1,
        help="Also delete terminal operations older than this many days (default: from settings)",
    ),
) -> None:
    """Delete expired export files and, optionally, old operations."""
    asyncio.run(_sweep(operation_days))


async def _sweep(operation_days: int | None) -> None:
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import dispose_engine, get_session_factory, init_engine
    from finance_transfer.services.artifact_service import build_artifact_service

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        service = build_artifact_service(settings, get_session_factory())
        result = await service.sweep(operation_retention_days=operation_days or settings.operation_retention_days)
        typer.echo(f"Deleted {result.artifacts_deleted} artifact(s) and {result.operations_deleted} operation(s)")
    finally:
        await dispose_engine()
