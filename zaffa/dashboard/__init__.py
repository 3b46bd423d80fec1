"""Web dashboard for Zaffa.

Provides a local web interface and JSON API over the booking list using
FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
