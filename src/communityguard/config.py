"""ABOUTME: Configuration management for the CommunityGuard security service
ABOUTME: Loads environment variables and provides configuration objects for different environments"""

import base64
import logging
import os
import uuid
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class InvalidConfig(Exception):
    """Error for when the config is not valid"""


SQLITE_DB_URI = "sqlite:///:memory:"
DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"  # noqa: S105

# Paths that never require a CSRF token, matched by prefix
DEFAULT_CSRF_EXEMPT_PATHS = (
    "/api/auth/callback",
    "/api/webhooks/",
    "/api/health",
    "/api/security/csp-report",
    "/api/csrf-token",
    "/api/cron/",
)


@dataclass(slots=True, kw_only=True)
class PostgresCfg:
    user: str
    password: str
    host: str
    port: int
    db_name: str

    def to_url(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"

    @classmethod
    def from_env(cls, default_db_name: str = "communityguard", user: str = "communityguard") -> "PostgresCfg":
        host = os.environ.get("DB_HOST", "localhost")
        default_port = 54321 if host == "localhost" else 5432
        return PostgresCfg(
            user=os.environ.get("DB_USER", user),
            password=os.environ.get("DB_PASSWORD", "abc123"),
            host=host,
            port=int(os.environ.get("DB_PORT", default_port)),
            db_name=os.environ.get("DB_NAME", default_db_name),
        )


def get_db_uri() -> str:
    return os.environ.get("DB_URI", PostgresCfg.from_env().to_url())


@dataclass(slots=True, kw_only=True)
class RedisCfg:
    host: str
    port: int
    db: str = ""
    # seconds - every counter store round trip is bounded by this
    timeout: float = 0.5

    def to_url(self) -> str:
        if self.db:
            return f"redis://{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "RedisCfg":
        host = os.environ.get("REDIS_HOST", "localhost")
        default_port = 63791 if host == "localhost" else 6379
        port = int(os.environ.get("REDIS_PORT", default_port))
        return RedisCfg(
            host=host,
            port=port,
            db=os.environ.get("REDIS_DB", ""),
            timeout=float(os.environ.get("RATE_LIMIT_STORE_TIMEOUT", "0.5")),
        )


def to_bool(value: str | None, context_str: str = "") -> bool:
    """
    Convert string to boolean. Valid options (after stripping whitespace and making lower-case)
    - False: "false", "no", "off", "0", None, ""
    - True: "true", "yes", "on", "1"

    The `context_str` is there for the error message, to help find the issue.
    """
    if value is None:
        return False
    value = value.lower().strip()
    if value in ("false", "no", "off", "0", ""):
        return False
    if value in ("true", "yes", "on", "1"):
        return True
    raise ValueError(
        f"Cannot convert '{context_str}{value}' to boolean. Valid values are: true/false, 1/0, yes/no, on/off (case-insensitive)"
    )


def bool_environ_get(key: str, default: str = "") -> bool:
    return to_bool(os.environ.get(key, default), context_str=f"{key}=")


def is_development() -> bool:
    return os.environ.get("FLASK_ENV", "development").lower().strip() == "development"


def get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def should_log_all_requests() -> bool:
    return bool_environ_get("LOG_ALL_REQUESTS")


def get_totp_encryption_key() -> bytes:
    """Get the master key used to encrypt TOTP secrets and key backup code hashes.

    The env var must hold base64 of at least 32 random bytes.
    """
    raw = os.environ.get("TOTP_ENCRYPTION_KEY", "")
    if not raw:
        raise ValueError("TOTP_ENCRYPTION_KEY environment variable must be set")
    try:
        key = base64.b64decode(raw, validate=True)
    except ValueError as e:
        raise ValueError("TOTP_ENCRYPTION_KEY must be valid base64") from e
    if len(key) < 32:
        raise ValueError("TOTP_ENCRYPTION_KEY must decode to at least 32 bytes")
    return key


def _get_csv_list(key: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.environ.get(key, default).split(",") if item.strip()]


class FlaskBaseConfig:
    """Base configuration class that loads from environment variables."""

    TESTING = False

    def __init__(self) -> None:
        self.SQLALCHEMY_DATABASE_URI = get_db_uri()
        self.SECRET_KEY: str = os.environ.get("SECRET_KEY", DEFAULT_SECRET_KEY)
        self.FLASK_ENV: str = os.environ.get("FLASK_ENV", "development")
        self.DEBUG: bool = to_bool(os.environ.get("DEBUG", "False"), context_str="DEBUG=")
        self.APP_URL: str = os.environ.get("APP_URL", "http://localhost:5000").rstrip("/")
        self.FORCE_HTTPS: bool = bool_environ_get("FORCE_HTTPS")
        self.SESSION_COOKIE_SECURE: bool = bool_environ_get("SESSION_COOKIE_SECURE")

        # Babel/i18n configuration
        self.LANGUAGES = _get_csv_list("SUPPORTED_LANGUAGES", "en") or ["en"]
        self.BABEL_DEFAULT_LOCALE = os.environ.get("BABEL_DEFAULT_LOCALE", "en")
        self.BABEL_DEFAULT_TIMEZONE = os.environ.get("BABEL_DEFAULT_TIMEZONE", "UTC")

        # CSRF configuration
        self.CSRF_SECRET: str = os.environ.get("CSRF_SECRET", "") or self.SECRET_KEY
        self.CSRF_EXEMPT_PATHS: tuple[str, ...] = tuple(
            _get_csv_list("CSRF_EXEMPT_PATHS", ",".join(DEFAULT_CSRF_EXEMPT_PATHS))
        )
        self.DISABLE_CSRF: bool = bool_environ_get("DISABLE_CSRF")

        # Session configuration
        self.SESSION_LIFETIME_DAYS: int = int(os.environ.get("SESSION_LIFETIME_DAYS", "30"))
        self.MAX_SESSIONS_PER_USER: int = int(os.environ.get("MAX_SESSIONS_PER_USER", "10"))
        self.SESSION_REFRESH_MINUTES: int = int(os.environ.get("SESSION_REFRESH_MINUTES", "60"))
        self.SESSION_TIMEOUT_MINUTES: int = int(os.environ.get("SESSION_TIMEOUT_MINUTES", "60"))
        self.SESSION_WARNING_MINUTES: int = int(os.environ.get("SESSION_WARNING_MINUTES", "5"))

        # Two-factor configuration
        self.TWO_FACTOR_VERIFIED_HOURS: int = int(os.environ.get("TWO_FACTOR_VERIFIED_HOURS", "24"))
        self.TOTP_ISSUER: str = os.environ.get("TOTP_ISSUER", "Community App")

        # Operations
        self.CRON_SECRET: str = os.environ.get("CRON_SECRET", "")
        self.SECURITY_ADMIN_USER_IDS: list[uuid.UUID] = [
            uuid.UUID(user_id) for user_id in _get_csv_list("SECURITY_ADMIN_USER_IDS")
        ]
        self.REDIS_URL: str = os.environ.get("REDIS_URL", RedisCfg.from_env().to_url())
        self.RATE_LIMIT_STORE_TIMEOUT: float = float(os.environ.get("RATE_LIMIT_STORE_TIMEOUT", "0.5"))
        self.RATE_LIMIT_ENABLED: bool = bool_environ_get("RATE_LIMIT_ENABLED", "true")
        # 5000 is milliseconds - every relational store statement is bounded by this
        self.DB_STATEMENT_TIMEOUT_MS: int = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "5000"))

    @property
    def csrf_bypass_active(self) -> bool:
        """The development-only CSRF bypass. Never true outside development."""
        return self.FLASK_ENV == "development" and self.DISABLE_CSRF


class FlaskConfig(FlaskBaseConfig):
    """Development configuration."""


class FlaskTestSQLiteConfig(FlaskBaseConfig):
    """Test configuration that uses SQLite in-memory database."""

    TESTING = True

    def __init__(self) -> None:
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = SQLITE_DB_URI
        self.SECRET_KEY = "test-secret-key-aockgn298zx081238"  # noqa: S105
        self.CSRF_SECRET = "test-csrf-secret-1f0b9c7e2d"  # noqa: S105
        self.FLASK_ENV = "testing"
        self.CRON_SECRET = "test-cron-secret"  # noqa: S105
        self.SESSION_COOKIE_SECURE = False
        self.FORCE_HTTPS = False


class FlaskProductionConfig(FlaskBaseConfig):
    """Production configuration with stricter defaults."""

    def __init__(self) -> None:
        super().__init__()
        self.FLASK_ENV = "production"
        self.FORCE_HTTPS = bool_environ_get("FORCE_HTTPS", "true")
        self.SESSION_COOKIE_SECURE = True

        # Ensure production has proper secrets
        if self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise InvalidConfig("SECRET_KEY must be set in production")
        if not os.environ.get("CSRF_SECRET"):
            raise InvalidConfig("CSRF_SECRET must be set in production")
        if self.DISABLE_CSRF:
            raise InvalidConfig("DISABLE_CSRF cannot be used in production")
        try:
            get_totp_encryption_key()
        except ValueError as e:
            raise InvalidConfig(str(e)) from e


def get_config(config_name: str = "") -> FlaskBaseConfig:
    """Return the appropriate configuration based on FLASK_ENV or config_name."""
    env = config_name.strip() or os.environ.get("FLASK_ENV", "development")
    env = env.lower().strip()

    config_classes = {
        "development": FlaskConfig,
        "testing": FlaskTestSQLiteConfig,
        "testing_sqlite": FlaskTestSQLiteConfig,
        "production": FlaskProductionConfig,
    }

    # Fall back to development if unknown config
    config_cls = config_classes.get(env, FlaskConfig)
    return config_cls()
