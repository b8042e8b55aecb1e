"""API Routes Package."""

from api.routes import health, sessions

__all__ = [
    "health",
    "sessions",
]
