"""
FastAPI Application
==================

HTTP front for the canvas rendering pipeline. The browser is launched
lazily by the first render; shutdown releases it.
"""

from contextlib import asynccontextmanager
import uuid
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from canvas_render import __version__
from canvas_render.config.settings import get_settings
from canvas_render.config.logging import get_logger
from canvas_render.core.rendering.font_resolver import get_font_resolver
from canvas_render.core.rendering.pipeline import close_render_pipeline
from canvas_render.api.routes.health import router as health_router
from canvas_render.api.routes.render import router as render_router
from canvas_render.models.schemas import ErrorResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting FastAPI application")

    # Font index is built once, up front
    resolver = get_font_resolver()
    logger.info("Font index ready", fonts=len(resolver))

    try:
        yield
    finally:
        logger.info("Shutting down FastAPI application")
        try:
            await close_render_pipeline()
            logger.info("Render pipeline closed")
        except Exception as e:
            logger.error("Error closing render pipeline", error=str(e))


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    description="Render positioned text and image elements to PNG",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.include_router(render_router)
app.include_router(health_router)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):  # type: ignore
    """Add request ID to all requests."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """General exception handler for unexpected errors."""
    error_response = ErrorResponse(error="Internal server error", details=str(exc))

    logger.error(
        "Unhandled exception",
        exception=str(exc),
        request_id=getattr(request.state, "request_id", None),
        exc_info=True,
    )

    return JSONResponse(status_code=500, content=error_response.model_dump(mode="json"))


def run_development_server() -> None:
    """Run the server with uvicorn."""
    uvicorn.run(
        "canvas_render.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


def create_app() -> FastAPI:
    """
    Application factory function for creating FastAPI app instance.
    Used by integration tests and external deployment scripts.

    Returns:
        FastAPI application instance
    """
    return app


if __name__ == "__main__":
    run_development_server()
