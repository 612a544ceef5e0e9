"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import importlib

from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from bridgeit.logging_config import configure_logging
    from bridgeit.errors import register_error_handlers

    app = Flask(__name__)
    app.json.sort_keys = False

    configure_logging(app)
    register_error_handlers(app)

    # Register blueprints
    from bridgeit.routes.leads import bp as leads_bp
    from bridgeit.routes.sprints import bp as sprints_bp
    from bridgeit.routes.voting import bp as voting_bp
    from bridgeit.routes.alumni import bp as alumni_bp
    from bridgeit.routes.handoff import bp as handoff_bp
    from bridgeit.routes.health import bp as health_bp

    app.register_blueprint(leads_bp)
    app.register_blueprint(sprints_bp)
    app.register_blueprint(voting_bp)
    app.register_blueprint(alumni_bp)
    app.register_blueprint(handoff_bp)
    app.register_blueprint(health_bp)

    # Circuit breakers for outbound notification channels
    from bridgeit.extensions import redis_client
    from bridgeit.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic, create_all() is never called here.
    for module in ('lead', 'active_builder', 'audit_entry', 'builder_assignment', 'alumni', 'build'):
        importlib.import_module(f'bridgeit.models.{module}')

    return app
