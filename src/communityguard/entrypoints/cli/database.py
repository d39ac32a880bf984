"""ABOUTME: CLI commands for database management operations
ABOUTME: Provides commands to create and reset the security tables"""

import os

import click

from communityguard.adapters.database import start_mappers
from communityguard.adapters.orm import metadata
from communityguard.entrypoints.cli.common import get_session_factory
from communityguard.service_layer.unit_of_work import SqlAlchemyUnitOfWork


@click.group()
def database() -> None:
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create any missing tables."""
    try:
        start_mappers()
        with SqlAlchemyUnitOfWork(get_session_factory(ctx)) as uow:
            if uow.session.bind is not None:
                metadata.create_all(uow.session.bind)
    except Exception as e:
        click.echo(click.style(f"✗ Error initialising database: {e}", "red"))
        raise click.Abort() from e

    click.echo(click.style("✓ Database tables created.", "green"))


@database.command("reset")
@click.pass_context
def reset_db(ctx: click.Context) -> None:
    """Reset the database (drop all tables and recreate)."""
    if os.environ.get("ALLOW_RESET_DB", "") != "DANGEROUS":
        click.echo("Resetting the database is a dangerous operation. In order to enable it set the")
        click.echo("environment variable ALLOW_RESET_DB to DANGEROUS.")
        return

    click.echo(click.style("⚠️  WARNING: This will destroy ALL sessions and two-factor enrollments!", "red"))
    delete_confirm = click.prompt("Type 'delete everything' if you want to continue.")
    if delete_confirm != "delete everything":
        click.echo("Operation cancelled.")
        return

    try:
        start_mappers()
        with SqlAlchemyUnitOfWork(get_session_factory(ctx)) as uow:
            if uow.session.bind is not None:
                metadata.drop_all(uow.session.bind)
                metadata.create_all(uow.session.bind)
    except Exception as e:
        click.echo(click.style(f"✗ Error resetting database: {e}", "red"))
        raise click.Abort() from e

    click.echo(click.style("✓ Database reset successfully.", "green"))
