# src/backstage_gate/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .consent import router as consent_router
from .downloads import router as downloads_router
from .gates import router as gates_router
from .submissions import router as submissions_router
from .verifications import router as verifications_router

__all__ = [
    "consent_router",
    "downloads_router",
    "gates_router",
    "submissions_router",
    "verifications_router",
]
