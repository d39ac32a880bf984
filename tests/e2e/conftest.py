import uuid

import pytest
from flask import Flask
from flask.testing import FlaskClient

from communityguard.bootstrap import Services
from communityguard.entrypoints.flask_app import create_app


@pytest.fixture
def app(sqlite_services: Services) -> Flask:
    """Test application on the SQLite unit of work and an in-memory counter store."""
    return create_app("testing", services=sqlite_services)


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()


@pytest.fixture
def other_user_id() -> uuid.UUID:
    return uuid.uuid4()
