"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance.
It handles:
1. Application initialization
2. Router registration
3. Middleware configuration
4. Exception handlers
5. Startup/shutdown events

Run with: uvicorn companion.api.main:app --reload
"""
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from companion import __version__
from companion.api.dependencies import shutdown_services
from companion.api.routes import (
    credits_router,
    health_router,
    memory_router,
    sessions_router,
    turn_router,
)
from companion.core.config import get_settings
from companion.core.exceptions import CompanionException, RateLimitExceeded
from companion.core.logging_config import get_logger, setup_logging
from companion.database.init_db import init_tables


# Initialize logging before anything else
settings = get_settings()
setup_logging(settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Create missing tables
    - Shutdown: Drain background tasks, release services
    """
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    logger.info(f"LLM Model: {settings.llm_model} (fallback: {settings.llm_model_fallback})")
    logger.info(
        f"History window: {settings.history_window}, "
        f"summary every {settings.summary_every_n_messages} messages"
    )

    try:
        init_tables()
    except Exception as e:
        logger.error(f"Failed to auto-init tables: {e}")

    yield  # Application runs here

    logger.info(f"Shutting down {settings.app_name}")
    shutdown_services()


app = FastAPI(
    title="Companion Chat API",
    description="""
    Conversational engine for persona-driven AI companions.

    ## Features

    - **Character chats**: persona, tone, scene and content policy per character
    - **Long-term memory**: facts the character remembers about you
    - **Rolling summaries**: long chats stay coherent
    - **Credits**: each turn is priced from its token count before generation
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ============================================================
# Middleware Configuration
# ============================================================

if settings.is_development():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.warning("CORS configured for development (all origins allowed)")


# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after)}
    )


@app.exception_handler(CompanionException)
async def companion_exception_handler(request: Request, exc: CompanionException):
    """Handle all custom companion exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same 400 error body as service validation."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": first.get("msg", "Invalid request"),
            "details": f"field={field}" if field else None,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions globally.

    Detailed error information is only included in development mode.
    """
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": str(exc) if settings.is_development() else None,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


# ============================================================
# Routers
# ============================================================

app.include_router(health_router)
app.include_router(turn_router)
app.include_router(sessions_router)
app.include_router(memory_router)
app.include_router(credits_router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "Companion Chat API",
        "version": __version__,
        "documentation": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "companion.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development()
    )
