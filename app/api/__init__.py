"""
API Blueprints Package

All HTTP route handlers for the application.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================

- quotes.py : Catalog, session selection, pricing, quote JSON and PDF export

Health and monitoring routes live in health_checks.py at the project root.
"""

# All blueprints are imported and registered in app/__init__.py
# This file serves as documentation only

__all__ = []
