"""
FastAPI API Server.

REST API for the healthcare directory admin: directory entries, their
role-specific metadata, and the accounts behind them.

Start with:
    uvicorn directory_service.api_server:app --reload --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv
load_dotenv(".env.local")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from directory_service.api.directory_entries import router as directory_entries_router
from directory_service.api.middleware import RateLimitMiddleware, RequestIdMiddleware
from directory_service.config import get_settings
from directory_service.exceptions import DirectoryError
from directory_service.logging_config import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

SERVICE_NAME = "directory-service"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    logger.info(
        "api_server_starting",
        environment=settings.environment.value,
        admin_auth=settings.require_admin_auth,
    )
    yield
    logger.info("api_server_stopping")


app = FastAPI(
    title="Directory Service API",
    description="Admin API for the healthcare directory: entries, role metadata and linked accounts",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# Middleware (last added is outermost)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    """Render domain errors as ``{"error": {code, message, details}}``."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        status=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routers
app.include_router(directory_entries_router)


@app.get("/health", tags=["System"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": SERVICE_NAME}


@app.get("/", tags=["System"])
async def root() -> dict[str, str]:
    """API root."""
    return {
        "service": "Directory Service",
        "version": SERVICE_VERSION,
        "docs": "/docs",
    }
