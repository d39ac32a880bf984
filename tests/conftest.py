"""ABOUTME: Pytest configuration and fixtures for CommunityGuard tests
ABOUTME: Provides fake and SQLite-backed service containers for unit, integration, and e2e tests"""

import os
import uuid

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from communityguard.adapters import database, orm
from communityguard.bootstrap import Services, bootstrap
from communityguard.config import FlaskTestSQLiteConfig, get_config
from tests.fakes import FakeCounterStore, FakeUnitOfWork

TEST_MASTER_KEY = bytes(range(32))


@pytest.fixture(autouse=True)
def set_test_env():
    """Automatically set test environment for all tests."""
    original_env = os.environ.get("FLASK_ENV")
    os.environ["FLASK_ENV"] = "testing"
    yield
    if original_env is not None:
        os.environ["FLASK_ENV"] = original_env
    else:
        os.environ.pop("FLASK_ENV", None)


@pytest.fixture
def temp_env_vars():
    """Fixture to temporarily set environment variables for testing."""
    original_vars = {}

    def _set_env_vars(**kwargs):
        for key, value in kwargs.items():
            original_vars.setdefault(key, os.environ.get(key))
            os.environ[key] = value

    yield _set_env_vars

    # Restore original environment variables
    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


@pytest.fixture
def clear_env_vars():
    """Fixture to temporarily remove environment variables for testing."""
    original_vars = {}

    def _clear_env_vars(*args):
        for key in args:
            original_vars.setdefault(key, os.environ.get(key))
            os.environ.pop(key, None)

    yield _clear_env_vars

    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value


@pytest.fixture
def test_config() -> FlaskTestSQLiteConfig:
    config = get_config("testing")
    assert isinstance(config, FlaskTestSQLiteConfig)
    return config


@pytest.fixture
def master_key() -> bytes:
    return TEST_MASTER_KEY


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def fake_uow() -> FakeUnitOfWork:
    return FakeUnitOfWork()


@pytest.fixture
def counter_store() -> FakeCounterStore:
    return FakeCounterStore()


@pytest.fixture
def fake_services(test_config, fake_uow, counter_store, master_key) -> Services:
    """Service container wired to in-memory fakes."""
    return bootstrap(
        test_config,
        start_orm=False,
        uow_factory=fake_uow.factory,
        counter_store=counter_store,
        totp_master_key=master_key,
    )


@pytest.fixture
def in_memory_sqlite_db():
    # one shared connection, so every session sees the same in-memory database
    return create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool)


@pytest.fixture
def sqlite_session_factory(in_memory_sqlite_db):
    orm.metadata.create_all(in_memory_sqlite_db)
    database.start_mappers()

    yield sessionmaker(bind=in_memory_sqlite_db, expire_on_commit=False)

    database.clear_mappers()
    orm.metadata.drop_all(in_memory_sqlite_db)


@pytest.fixture
def sqlite_services(test_config, sqlite_session_factory, counter_store, master_key) -> Services:
    """Service container backed by the real SQLAlchemy unit of work on SQLite."""
    return bootstrap(
        test_config,
        session_factory=sqlite_session_factory,
        counter_store=counter_store,
        totp_master_key=master_key,
    )


@pytest.fixture
def cli_with_services(test_config):
    """Click runner that invokes commands with a prebuilt service container in context."""

    def _invoke_cli_with_context(cli_command, args, services, **kwargs):
        runner = CliRunner()
        ctx_obj = {"config": test_config, "services": services}
        return runner.invoke(cli_command, args, obj=ctx_obj, **kwargs)

    return _invoke_cli_with_context
