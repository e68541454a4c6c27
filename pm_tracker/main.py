"""
FastAPI application entry point.
"""

import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from pm_tracker import __version__
from pm_tracker.api.deps import ServiceContainer
from pm_tracker.api.v1 import health, specs, stories
from pm_tracker.core.config import get_settings, settings
from pm_tracker.core.constants import API_PREFIX
from pm_tracker.core.exceptions import PMTrackerError
from pm_tracker.core.logging import bind_context, clear_context, get_logger, setup_logging, unbind_context

# Initialize logging
setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Builds the service container on startup and closes it on shutdown.
    """
    logger.info(
        "Starting PM Tracker AI service",
        app_name=settings.app_name,
        env=settings.app_env,
    )

    container = ServiceContainer(get_settings())
    app.state.container = container
    if not container.settings.llm.api_key:
        logger.warning("LLM API key is not configured, AI endpoints will fail")

    try:
        yield
    finally:
        logger.info("Shutting down PM Tracker AI service")
        await container.close()


# Create FastAPI application
app = FastAPI(
    title="PM Tracker AI API",
    description="AI story generation, consolidation and task spec planning for PM Tracker",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next: Any) -> Response:
    """Tag every log line of a request with its request ID."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or f"req_{secrets.token_hex(8)}"
    clear_context()
    bind_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        unbind_context("request_id", "path")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Exception handlers
@app.exception_handler(PMTrackerError)
async def pm_tracker_error_handler(
    request: Request,
    exc: PMTrackerError,
) -> JSONResponse:
    """Handle custom application errors."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Application error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, **exc.to_dict()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        },
    )


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(stories.router, prefix=API_PREFIX, tags=["Stories"])
app.include_router(specs.router, prefix=API_PREFIX, tags=["Specs"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "PM Tracker AI API",
        "version": __version__,
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "generate_features": f"{API_PREFIX}/ai/generate-features",
            "generate_stories": f"{API_PREFIX}/ai/generate-stories",
            "consolidate_stories": f"{API_PREFIX}/ai/consolidate-stories",
            "categorize_story": f"{API_PREFIX}/ai/categorize-story",
            "save_stories": f"{API_PREFIX}/ai/save-stories",
            "generate_specs": f"{API_PREFIX}/ai/generate-specs",
            "organize_tasks": f"{API_PREFIX}/ai/organize-tasks",
            "metrics": f"{API_PREFIX}/ai/metrics",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pm_tracker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
