"""
Helper utility functions for file operations and money formatting.
"""

import os
import json


def load_json_file(filepath, default=None):
    """
    Load JSON data from a file.
    
    Args:
        filepath: Path to the JSON file
        default: Default value if file doesn't exist (defaults to empty list)
    
    Returns:
        Parsed JSON data or default value
    """
    if os.path.exists(filepath):
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)
    return default if default is not None else []


def format_currency(amount):
    """
    Format a dollar amount for display, e.g. ``-$1,250.50``.

    Args:
        amount: Number to format

    Returns:
        Formatted string with two decimals and thousands separators
    """
    value = float(amount)
    if value < 0:
        return f"-${abs(value):,.2f}"
    return f"${value:,.2f}"


def format_percent(rate):
    """Format a decimal rate (0.075) as a percentage string ("7.5%")."""
    return f"{float(rate) * 100:g}%"
