"""FastAPI application (HTTP + Server-Sent Events)."""

from .app import create_app

__all__ = ["create_app"]
