"""REST API layer for statehistory.

Exposes:
    create_app -- FastAPI application factory.
    APIError   -- Exception rendered as the ``{"error", "detail"}`` envelope.
"""

from statehistory.api.app import create_app
from statehistory.api.routes import APIError

__all__ = ["APIError", "create_app"]
