"""
Utility helpers
"""
from .formatting import escape_html, format_duration, format_size

__all__ = ["escape_html", "format_duration", "format_size"]
