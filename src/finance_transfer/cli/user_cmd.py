"""User management CLI commands."""

import asyncio
import uuid

import typer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

user_app = typer.Typer()


async def resolve_user_id(session: AsyncSession, username: str) -> uuid.UUID:
    """Look up a user id by username, exiting with an error when unknown."""
    from finance_transfer.models.user import User

    user_id = await session.scalar(select(User.id).where(User.username == username))
    if user_id is None:
        typer.echo(f"Error: user '{username}' not found", err=True)
        raise typer.Exit(code=1)
    return user_id


@user_app.command("create")
def create_user(
    username: str = typer.Option(..., prompt=True, help="Username"),
    email: str = typer.Option(..., prompt=True, help="Email address"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password"),
    if_not_exists: bool = typer.Option(
        False,
        "--if-not-exists",
        help="Exit successfully if user already exists (idempotent mode)",
    ),
) -> None:
    """Create a new user interactively."""
    asyncio.run(_create_user(username, email, password, if_not_exists=if_not_exists))


async def _create_user(
    username: str,
    email: str,
    password: str,
    *,
    if_not_exists: bool = False,
) -> None:
    """Async implementation of user creation."""
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import dispose_engine, get_session_factory, init_engine
    from finance_transfer.schemas.auth import UserCreateRequest
    from finance_transfer.services.auth_service import create_user

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            request = UserCreateRequest(username=username, email=email, password=password)
            user = await create_user(session, request)
            typer.echo(f"User '{user.username}' created ({user.id})")
    except ValueError as e:
        if if_not_exists and "already exists" in str(e):
            typer.echo(f"User '{username}' already exists, skipping (--if-not-exists)")
            return
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()
