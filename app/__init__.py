"""
Firefly Tiny Homes Quote Builder - Application Package

This package contains the HTTP side of the quote builder:
- api/: HTTP route handlers (Flask Blueprints)
- utils/: Shared utility functions

The app factory and core Flask setup remain in app_init.py at the project root.
Pricing, selection, quote assembly and PDF rendering live in the root services/ package.
"""

import logging

logger = logging.getLogger(__name__)


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.
    Called from app_init.create_app after the quote services are attached.

    Args:
        app: Flask application instance
    """
    # Imported here so services can use app.utils without loading the routes
    from app.api.quotes import quotes_bp

    app.register_blueprint(quotes_bp)
    logger.info("Quote builder blueprints registered")


__all__ = ['register_blueprints']
