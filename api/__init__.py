"""API Package.

FastAPI server for the integration posting service.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]
