"""AV Standards Engine — HTTP host for the standards rule engine.

Main FastAPI application with lifespan management, CORS, and global error handling.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from avstandards.config import get_settings
from avstandards.api.router import api_router

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if get_settings().DEBUG else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(get_settings().LOG_LEVEL.upper())
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    settings = get_settings()

    logger.info(
        "app_started",
        debug=settings.DEBUG,
        strict_evaluation=settings.STRICT_EVALUATION,
        severity_thresholds=(settings.SEVERITY_ERROR_PRIORITY, settings.SEVERITY_WARNING_PRIORITY),
    )

    yield

    logger.info("app_stopped")


# ── Create Application ──

app = FastAPI(
    title="AV Standards Engine",
    description=(
        "Validates AV room and equipment designs against a hierarchy of "
        "standards rules scoped by room type, platform, ecosystem, tier, "
        "use case and client."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ── Middleware ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Global Exception Handlers ──

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all error handler for unhandled exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again.",
        },
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "message": str(exc)},
    )


# ── Routes ──

app.include_router(api_router, prefix="/api/v1")


# ── Root endpoint ──

@app.get("/")
async def root():
    """Root endpoint — API info."""
    return {
        "name": get_settings().APP_NAME,
        "version": "1.0.0",
        "description": "Standards rule engine for AV designs",
        "docs": "/docs",
        "health": "/api/v1/health",
    }


def run() -> None:
    """Serve with uvicorn using HOST/PORT from settings."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("avstandards.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL)
