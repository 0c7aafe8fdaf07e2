"""Core modules for the bot."""

from .http_server import HTTPServer
from .logging import setup_logging
from .storage import JsonDocument

__all__ = [
    # Services
    "HTTPServer",
    "JsonDocument",
    # Logging
    "setup_logging",
]
