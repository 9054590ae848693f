"""
WSGI Entry Point for Gunicorn

Gunicorn can be configured to use either:
  - wsgi:app
  - app:app (via app/__init__.py, which builds the app lazily)
"""

from app_init import create_app

app = create_app()
