# src/backstage_gate/main.py
"""Main entry point for the Backstage Gate application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from backstage_gate.api.v1 import (
    consent_router,
    downloads_router,
    gates_router,
    submissions_router,
    verifications_router,
)
from backstage_gate.core.errors import GateError, ValidationError
from backstage_gate.core.settings import settings
from backstage_gate.services.background import BackgroundDispatcher
from backstage_gate.services.collaborators import Collaborators, build_collaborators

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Backstage Gate API",
    description="Gated-download verification and credential engine",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(gates_router, prefix="/api/v1")
app.include_router(submissions_router, prefix="/api/v1")
app.include_router(verifications_router, prefix="/api/v1")
app.include_router(downloads_router, prefix="/api/v1")
app.include_router(consent_router, prefix="/api/v1")


@app.exception_handler(GateError)
async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={
            "error": {
                "code": ValidationError.code,
                "message": ValidationError.default_message,
                "details": {"errors": jsonable_encoder(exc.errors())},
            }
        },
    )


@app.on_event("startup")
async def on_startup() -> None:
    app.state.collaborators = build_collaborators(settings)
    app.state.dispatcher = BackgroundDispatcher(settings.background_task_timeout_seconds)
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    dispatcher: BackgroundDispatcher | None = getattr(app.state, "dispatcher", None)
    if dispatcher:
        await dispatcher.drain()
    collaborators: Collaborators | None = getattr(app.state, "collaborators", None)
    if collaborators:
        await collaborators.aclose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("backstage_gate.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
