"""ABOUTME: Shared helpers for CLI commands
ABOUTME: Builds the service container lazily so commands only touch the stores they need"""

import click
from sqlalchemy.orm import sessionmaker

from communityguard.adapters.database import create_session_factory
from communityguard.bootstrap import Services, bootstrap
from communityguard.config import FlaskBaseConfig


def get_cli_config(ctx: click.Context) -> FlaskBaseConfig:
    config = ctx.obj["config"]
    assert isinstance(config, FlaskBaseConfig)
    return config


def get_session_factory(ctx: click.Context) -> sessionmaker:
    if "session_factory" not in ctx.obj:
        config = get_cli_config(ctx)
        ctx.obj["session_factory"] = create_session_factory(
            config.SQLALCHEMY_DATABASE_URI, statement_timeout_ms=config.DB_STATEMENT_TIMEOUT_MS
        )
    session_factory = ctx.obj["session_factory"]
    assert isinstance(session_factory, sessionmaker)
    return session_factory


def get_cli_services(ctx: click.Context) -> Services:
    if "services" not in ctx.obj:
        ctx.obj["services"] = bootstrap(get_cli_config(ctx), session_factory=get_session_factory(ctx))
    services = ctx.obj["services"]
    assert isinstance(services, Services)
    return services
