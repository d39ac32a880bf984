"""ABOUTME: CLI commands for session maintenance
ABOUTME: Marks expired sessions inactive, the same job the cron endpoint runs"""

import click

from communityguard.entrypoints.cli.common import get_cli_services


@click.group()
def sessions() -> None:
    """Session management commands."""
    pass


@sessions.command("cleanup-expired")
@click.pass_context
def cleanup_expired(ctx: click.Context) -> None:
    """Mark every expired but still active session as inactive."""
    try:
        expired = get_cli_services(ctx).sessions.cleanup_expired_sessions()
    except Exception as e:
        click.echo(click.style(f"✗ Error cleaning up sessions: {e}", "red"))
        raise click.Abort() from e

    click.echo(click.style(f"✓ Marked {expired} expired session(s) inactive.", "green"))
