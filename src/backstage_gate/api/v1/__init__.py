# src/backstage_gate/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    consent_router,
    downloads_router,
    gates_router,
    submissions_router,
    verifications_router,
)

__all__ = [
    "consent_router",
    "downloads_router",
    "gates_router",
    "submissions_router",
    "verifications_router",
]
