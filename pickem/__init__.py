import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import config
from pickem.errors import PickemError
from pickem.services.live_channel import LiveChannel

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()
live_channel = LiveChannel()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
)


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    live_channel.init_app(app)

    # Identity loaders for Flask-Login
    from pickem import auth  # noqa: F401

    # Configure WebSocket CORS based on environment
    allowed_origins = "*"
    if not app.config.get("DEBUG") and not app.config.get("TESTING"):
        allowed_origins = os.environ.get(
            "ALLOWED_ORIGINS", "https://yourdomain.com,https://www.yourdomain.com"
        ).split(",")

    # Redis message queue lets several workers share Socket.IO rooms
    message_queue = None
    redis_url = os.environ.get("REDIS_URL")
    if redis_url and not app.config.get("TESTING"):
        import redis

        try:
            redis.Redis.from_url(redis_url).ping()
            message_queue = redis_url
            logger.info(f"Socket.IO using Redis message queue at {redis_url}")
        except redis.exceptions.ConnectionError as e:
            logger.warning(f"Redis not available for Socket.IO message queue: {e}")

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "threading"),
        ping_timeout=60,
        ping_interval=25,
        message_queue=message_queue,
    )

    # Import and register blueprints
    from pickem.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    from pickem.routes.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/admin")

    from pickem.routes.live import bp as live_bp

    app.register_blueprint(live_bp, url_prefix="/live")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from pickem.utils.logging_config import setup_logging

    setup_logging(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from pickem.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    # Register SocketIO handlers and the live channel bridge
    from pickem import socketio_handlers

    socketio_handlers.register_live_bridge(live_channel)

    return app


def register_error_handlers(app):
    """Register global error handlers"""

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    @app.errorhandler(PickemError)
    def handle_pickem_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__}: {error} - Path: {request.path}")
        else:
            app.logger.info(f"{type(error).__name__}: {error} - Path: {request.path}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"success": False, "error": "Resource not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"success": False, "error": "Internal server error"}), 500

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({"success": False, "error": "Access forbidden"}), 403

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"success": False, "error": "Authentication required"}), 401

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"success": False, "error": "Bad request"}), 400

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"success": False, "error": "Too many requests"}), 429


from pickem import models  # noqa: F401, E402 - imported for model registration
