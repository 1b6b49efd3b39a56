"""API Package.

FastAPI server for the invoice intake service.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
