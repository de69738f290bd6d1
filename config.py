import os
import secrets
import warnings
from datetime import datetime, timezone

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _default_season():
    """NFL seasons are labelled by the year they kick off in (September)"""
    now = datetime.now(timezone.utc)
    return now.year if now.month >= 9 else now.year - 1


class Config:
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "🔐 SECRET_KEY not set! Using auto-generated key. "
            "Set SECRET_KEY in .env to keep sessions stable across restarts.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "pickem_db"
            db_user = os.environ.get("DB_USER") or "pickem_user"
            db_password = os.environ.get("DB_PASSWORD") or "pickem_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "pickem.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Result feed configuration
    RESULT_FEED_URL = os.environ.get("RESULT_FEED_URL") or "http://localhost:8081/feed"
    RESULT_FEED_TIMEOUT = float(os.environ.get("RESULT_FEED_TIMEOUT") or 10)
    RESULT_FEED_MAX_RETRIES = int(os.environ.get("RESULT_FEED_MAX_RETRIES") or 3)

    # Game rules
    CURRENT_SEASON = int(os.environ.get("CURRENT_SEASON") or _default_season())
    EDIT_LOCKOUT_MINUTES = int(os.environ.get("EDIT_LOCKOUT_MINUTES") or 10)
    STARTED_GRACE_MINUTES = int(os.environ.get("STARTED_GRACE_MINUTES") or 15)
    COMPLETION_HEURISTIC_HOURS = float(
        os.environ.get("COMPLETION_HEURISTIC_HOURS") or 6
    )
    TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")

    # Identity is established upstream; the gateway forwards the user id
    AUTH_USER_HEADER = os.environ.get("AUTH_USER_HEADER", "X-User-Id")

    # Live channel
    LIVE_HEARTBEAT_SECONDS = float(os.environ.get("LIVE_HEARTBEAT_SECONDS") or 25)
    LIVE_QUEUE_SIZE = int(os.environ.get("LIVE_QUEUE_SIZE") or 100)
    LIVE_DEBOUNCE_MS = int(os.environ.get("LIVE_DEBOUNCE_MS") or 1000)
    LIVE_POLL_SECONDS = int(os.environ.get("LIVE_POLL_SECONDS") or 30)
    LIVE_STALE_SECONDS = int(os.environ.get("LIVE_STALE_SECONDS") or 60)
    LIVE_MAX_RECONNECT_ATTEMPTS = int(
        os.environ.get("LIVE_MAX_RECONNECT_ATTEMPTS") or 5
    )
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "threading")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pickem:"
    LEADERBOARD_CACHE_TIMEOUT = int(os.environ.get("LEADERBOARD_CACHE_TIMEOUT", 60))

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    PICK_SUBMIT_RATE_LIMIT = os.environ.get("PICK_SUBMIT_RATE_LIMIT", "30 per minute")

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        import redis

        try:
            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "🔶 Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "🚨 PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    RATELIMIT_ENABLED = False
    CURRENT_SEASON = 2025
    LIVE_HEARTBEAT_SECONDS = 0.05

    def __init__(self):
        # Keep the in-memory URI regardless of DATABASE_URL in the environment
        pass


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
