import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import Config

logger = logging.getLogger(__name__)


def _configure_logging():
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _register_error_handlers(app: Flask):
    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception("Unhandled error: %s", e)
        return jsonify({"error": "Internal Server Error"}), 500


def create_app(testing: bool = False, services=None):
    _configure_logging()

    if not testing:
        for problem in Config.validate():
            logger.warning("Configuration: %s", problem)

    app = Flask(__name__)
    app.config["TESTING"] = testing

    # CORS configuration for development and production
    allowed_origins = [
        "http://localhost:3000",  # Local Next.js dev server
    ]

    # Add production frontend URL if set
    frontend_url = Config.FRONTEND_URL
    if frontend_url:
        allowed_origins.append(frontend_url)

    # In development, allow all origins for easier testing
    if os.getenv("FLASK_ENV") == "development":
        CORS(app)
    else:
        CORS(app, origins=allowed_origins, supports_credentials=True)

    if services is None:
        from .services.container import create_services

        services = create_services()
    app.extensions["services"] = services

    _register_error_handlers(app)

    from .routes import bp as api_bp
    app.register_blueprint(api_bp, url_prefix="/api")

    return app
