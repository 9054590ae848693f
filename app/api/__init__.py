"""
API Blueprints Package

All HTTP route handlers for the application, organized by domain.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================
- billing.py        : Property billing setup (load, save, auto-save, categories, lookup)
- job_categories.py : Master job category catalog and unit sizes

Health checks live in health_checks.py at the project root.
"""

# All blueprints are imported and registered in app/__init__.py

__all__ = []
