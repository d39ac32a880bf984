"""ABOUTME: Main CLI entry point using Click for CommunityGuard administration
ABOUTME: Provides subcommands for sessions, rate limits, two-factor history and database operations"""

import click

import communityguard.logging
from communityguard.config import get_config, get_log_level


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """CommunityGuard security administration CLI."""
    # Ensure context object exists
    ctx.ensure_object(dict)

    communityguard.logging.logging_setup(get_log_level())
    if "config" not in ctx.obj:
        ctx.obj["config"] = get_config()


@cli.command()
def version() -> None:
    """Show CommunityGuard version."""
    click.echo("CommunityGuard 0.1.0")


# Import subcommands to register them
from .database import database  # noqa: E402
from .rate_limits import rate_limits  # noqa: E402
from .sessions import sessions  # noqa: E402
from .two_factor import two_factor  # noqa: E402

cli.add_command(database)
cli.add_command(rate_limits)
cli.add_command(sessions)
cli.add_command(two_factor)


if __name__ == "__main__":
    cli()
