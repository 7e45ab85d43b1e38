"""
Flask application factory.

Creates and configures the Flask app, registers the blueprints.
"""
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from leadpipe.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app, service='api')

    from leadpipe.routes.health import bp as health_bp
    app.register_blueprint(health_bp)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic, no init_db() call.
    import importlib
    importlib.import_module('leadpipe.models.lead')
    importlib.import_module('leadpipe.models.task')
    importlib.import_module('leadpipe.models.campaign_run')
    importlib.import_module('leadpipe.models.market_stats')

    return app
