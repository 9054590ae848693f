"""
Property Billing - Application Package

This package contains the HTTP layer:
- api/: HTTP route handlers (Flask Blueprints)

Business logic lives in the root services/ package; the app factory and
core Flask setup live in app_init.py at the project root.
"""

import logging

logger = logging.getLogger(__name__)

# Import blueprints
from app.api.billing import billing_bp
from app.api.job_categories import job_categories_bp


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.
    Called from create_app() after the billing services are attached.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(billing_bp)
    app.register_blueprint(job_categories_bp)
    logger.info("Billing blueprints registered")


__all__ = ['register_blueprints', 'billing_bp', 'job_categories_bp']


# ==============================================================================
# WSGI APP EXPORT FOR GUNICORN
# ==============================================================================
# This allows gunicorn to run with: gunicorn app:app
# __getattr__ loads lazily to avoid circular imports with app_init.
# ==============================================================================

_flask_app = None

def __getattr__(name):
    """Lazy load the Flask app to avoid circular imports."""
    global _flask_app
    if name == 'app':
        if _flask_app is None:
            from app_init import create_app
            _flask_app = create_app()
        return _flask_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
