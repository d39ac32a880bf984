"""ABOUTME: CLI commands for two-factor authentication administration
ABOUTME: Shows a user's two-factor audit history"""

import uuid

import click

from communityguard.entrypoints.cli.common import get_cli_services


@click.group("two-factor")
def two_factor() -> None:
    """Two-factor authentication commands."""
    pass


@two_factor.command("history")
@click.argument("user_id", type=click.UUID)
@click.option("--limit", default=20, show_default=True, help="Number of entries to show")
@click.pass_context
def history(ctx: click.Context, user_id: uuid.UUID, limit: int) -> None:
    """Show recent two-factor events for USER_ID, newest first."""
    services = get_cli_services(ctx)
    with services.uow_factory() as uow:
        entries = list(uow.two_factor_audit_logs.get_for_user(user_id, limit=limit))

    if not entries:
        click.echo("No two-factor events found.")
        return

    click.echo(f"Two-factor events for {user_id}:")
    for entry in entries:
        outcome = click.style("ok", "green") if entry.success else click.style("failed", "red")
        method = entry.method.value if entry.method else "-"
        click.echo(f"  {entry.timestamp.isoformat()}  {entry.action.value:<24} {outcome:<6} {method:<12} {entry.ip_address}")
