# src/wanderbuddy/main.py
"""Main entry point for the WanderBuddy application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from wanderbuddy.api.v1 import (
    activities_router,
    join_requests_router,
    meetups_router,
    messages_router,
    notifications_router,
    profiles_router,
    realtime_router,
)
from wanderbuddy.core.errors import WanderBuddyError
from wanderbuddy.core.settings import settings
from wanderbuddy.services.notifications import NotificationFanoutWorker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="WanderBuddy API",
    description="Travel meetups with realtime group chat",
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


@app.exception_handler(WanderBuddyError)
async def domain_error_handler(request: Request, exc: WanderBuddyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include API routers
app.include_router(meetups_router, prefix="/api/v1")
app.include_router(join_requests_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(activities_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(profiles_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")

# Uploaded attachments and avatars
app.mount(
    "/storage",
    StaticFiles(directory=settings.storage_root, check_dir=False),
    name="storage",
)


@app.on_event("startup")
async def on_startup() -> None:
    if settings.fanout_worker_enabled:
        worker = NotificationFanoutWorker()
        await worker.start()
        app.state.fanout_worker = worker
    else:
        app.state.fanout_worker = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: NotificationFanoutWorker | None = getattr(app.state, "fanout_worker", None)
    if worker:
        await worker.stop()


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
        "description": "Travel meetups with realtime group chat",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("wanderbuddy.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
