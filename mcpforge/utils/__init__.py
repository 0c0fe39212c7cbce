"""Utility modules: logging, MIME type resolution."""

from mcpforge.utils.logging import setup_logging, get_logger
from mcpforge.utils.mime import resolve_mime_type, is_binary_mime_type

__all__ = [
    "setup_logging",
    "get_logger",
    "resolve_mime_type",
    "is_binary_mime_type",
]
