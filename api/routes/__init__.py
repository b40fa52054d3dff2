"""API Routes Package."""

from api.routes import health, integrations

__all__ = [
    "health",
    "integrations",
]
