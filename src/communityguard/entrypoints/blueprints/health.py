"""ABOUTME: Health check endpoint for monitoring service status
ABOUTME: Reports database and counter store reachability as JSON"""

from flask import Blueprint, jsonify
from flask.typing import ResponseReturnValue
from sqlalchemy.exc import SQLAlchemyError

from communityguard.entrypoints.decorators import get_services
from communityguard.service_layer.exceptions import CounterStoreError

health_bp = Blueprint("health", __name__, url_prefix="/api")


def check_database() -> bool:
    """Check database connectivity with a primary key lookup on the session store."""
    try:
        with get_services().uow_factory() as uow:
            uow.user_sessions.get("health-check")
        return True
    except SQLAlchemyError:
        return False


def check_counter_store() -> bool:
    try:
        return get_services().counter_store.ping()
    except CounterStoreError:
        return False


@health_bp.route("/health", methods=["GET"])
def health_check() -> ResponseReturnValue:
    """
    Health check endpoint returning JSON with system status.

    The counter store is reported but does not fail the check: rate limiting
    fails open without it. HTTP status is 500 when the database is down.
    """
    db_ok = check_database()
    counter_store_ok = check_counter_store()

    response_data = {
        "status": "ok" if db_ok else "error",
        "database_ok": db_ok,
        "counter_store_ok": counter_store_ok,
    }
    return jsonify(response_data), 200 if db_ok else 500
