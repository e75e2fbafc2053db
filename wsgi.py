"""
WSGI Entry Point for Gunicorn

This module provides the WSGI application entry point for production deployment:
  gunicorn wsgi:app

The Flask application is built by app_init.create_app.
"""

from app_init import create_app

app = create_app()
