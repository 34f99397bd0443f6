"""Flask application factory."""

import logging

from flask import Flask

from .config import Config
from .services.session_service import build_session_service

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Ensure instance folder exists
    config_class.INSTANCE_PATH.mkdir(parents=True, exist_ok=True)

    service = build_session_service(app.config)
    app.extensions["lessonplay"] = service
    logger.info(f"Session service ready (storage: {app.config['STORAGE_BACKEND']})")

    # Register blueprints
    from .routes import hubs, manifests, sessions

    app.register_blueprint(manifests.bp)
    app.register_blueprint(sessions.bp)
    app.register_blueprint(hubs.bp)

    return app


def main():
    """Entry point for `lessonplay-web` command."""
    app = create_app()
    app.run(debug=True, host="0.0.0.0", port=5000)


if __name__ == "__main__":
    main()
