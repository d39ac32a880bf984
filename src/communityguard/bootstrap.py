"""ABOUTME: Builds the service container once at process start
ABOUTME: Wires stores, unit of work and services together so handlers receive them explicitly"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from communityguard.adapters import database
from communityguard.adapters.redis_counter_store import RedisCounterStore, create_redis_client
from communityguard.config import FlaskBaseConfig, get_totp_encryption_key
from communityguard.service_layer import unit_of_work
from communityguard.service_layer.counter_store import AbstractCounterStore
from communityguard.service_layer.csrf_service import CsrfService
from communityguard.service_layer.rate_limiter import RateLimiter
from communityguard.service_layer.session_service import SessionService
from communityguard.service_layer.two_factor_service import TwoFactorService


@dataclass(slots=True, kw_only=True)
class Services:
    uow_factory: unit_of_work.UnitOfWorkFactory
    counter_store: AbstractCounterStore
    rate_limiter: RateLimiter
    csrf: CsrfService
    sessions: SessionService
    two_factor: TwoFactorService


def bootstrap(
    config: FlaskBaseConfig,
    start_orm: bool = True,
    uow_factory: unit_of_work.UnitOfWorkFactory | None = None,
    session_factory: sessionmaker | None = None,
    counter_store: AbstractCounterStore | None = None,
    totp_master_key: bytes | None = None,
) -> Services:
    if start_orm:
        database.start_mappers()

    if uow_factory is None:
        if session_factory is None:
            session_factory = database.create_session_factory(
                config.SQLALCHEMY_DATABASE_URI, statement_timeout_ms=config.DB_STATEMENT_TIMEOUT_MS
            )
        sql_session_factory = session_factory

        def uow_factory() -> unit_of_work.AbstractUnitOfWork:
            return unit_of_work.SqlAlchemyUnitOfWork(sql_session_factory)

    if counter_store is None:
        counter_store = RedisCounterStore(create_redis_client(config.REDIS_URL, config.RATE_LIMIT_STORE_TIMEOUT))

    return Services(
        uow_factory=uow_factory,
        counter_store=counter_store,
        rate_limiter=RateLimiter(counter_store),
        csrf=CsrfService(
            secret=config.CSRF_SECRET,
            exempt_paths=config.CSRF_EXEMPT_PATHS,
            bypass=config.csrf_bypass_active,
        ),
        sessions=SessionService(
            uow_factory,
            lifetime=timedelta(days=config.SESSION_LIFETIME_DAYS),
            max_sessions=config.MAX_SESSIONS_PER_USER,
            refresh_after=timedelta(minutes=config.SESSION_REFRESH_MINUTES),
        ),
        two_factor=TwoFactorService(
            uow_factory,
            master_key=totp_master_key or get_totp_encryption_key(),
            issuer=config.TOTP_ISSUER,
        ),
    )
