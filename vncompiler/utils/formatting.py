"""
Formatting helpers shared by the renderer, the CLI and the server
"""
from __future__ import annotations

import html


def escape_html(value: object) -> str:
    """Escape a value for use in element text or a double-quoted attribute"""
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    size = float(num_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
    return f"{num_bytes} B"


def format_duration(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    return f"{milliseconds / 1000:.2f}s"
