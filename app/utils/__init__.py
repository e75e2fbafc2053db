"""
Utilities Package

Shared helper functions used across the application.
"""

from app.utils.helpers import (
    load_json_file,
    format_currency,
    format_percent,
)

__all__ = [
    'load_json_file',
    'format_currency',
    'format_percent',
]
