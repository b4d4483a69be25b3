"""Flask application exposing image version metadata."""

from flask import Flask


def create_app(resolver):
    """Create and configure Flask application.

    Args:
        resolver: VersionResolver answering the metadata queries

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Store resolver in app config for route handlers
    app.config["resolver"] = resolver

    from . import routes

    app.register_blueprint(routes.api_bp)

    return app
