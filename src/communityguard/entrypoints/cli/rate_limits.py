"""ABOUTME: CLI commands to inspect and reset rate limit counters
ABOUTME: Works on a named rule and client identifier, eg an IP address"""

import click

from communityguard.entrypoints.cli.common import get_cli_services
from communityguard.service_layer.exceptions import CounterStoreError
from communityguard.service_layer.rate_limiter import RATE_LIMIT_RULES

rule_option = click.option(
    "--rule",
    type=click.Choice(sorted(RATE_LIMIT_RULES), case_sensitive=False),
    default="auth",
    help="Named rate limit rule",
)


@click.group("rate-limits")
def rate_limits() -> None:
    """Rate limit counter commands."""
    pass


@rate_limits.command("info")
@click.argument("client_id")
@rule_option
@click.pass_context
def info(ctx: click.Context, client_id: str, rule: str) -> None:
    """Show current usage for CLIENT_ID under a rule."""
    limit_rule = RATE_LIMIT_RULES[rule.lower()]
    try:
        usage = get_cli_services(ctx).rate_limiter.info(
            limit_rule.key_for(client_id), limit_rule.window_ms, limit_rule.max_requests
        )
    except CounterStoreError as e:
        click.echo(click.style(f"✗ Counter store unavailable: {e}", "red"))
        raise click.Abort() from e

    click.echo(f"Rule:      {limit_rule.name} ({limit_rule.max_requests} per {limit_rule.window_ms // 1000}s)")
    click.echo(f"Client:    {client_id}")
    click.echo(f"Current:   {usage.current}")
    click.echo(f"Remaining: {usage.remaining}")
    click.echo(f"Resets at: {usage.reset_time.isoformat()}")


@rate_limits.command("reset")
@click.argument("client_id")
@rule_option
@click.pass_context
def reset(ctx: click.Context, client_id: str, rule: str) -> None:
    """Clear the counter for CLIENT_ID under a rule."""
    limit_rule = RATE_LIMIT_RULES[rule.lower()]
    try:
        removed = get_cli_services(ctx).rate_limiter.reset(limit_rule.key_for(client_id))
    except CounterStoreError as e:
        click.echo(click.style(f"✗ Counter store unavailable: {e}", "red"))
        raise click.Abort() from e

    if removed:
        click.echo(click.style(f"✓ Reset {limit_rule.name} limit for {client_id}.", "green"))
    else:
        click.echo(click.style(f"No {limit_rule.name} counter found for {client_id}.", "yellow"))
