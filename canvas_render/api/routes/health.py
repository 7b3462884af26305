"""
Health Routes
=============

FastAPI routes for liveness and health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from canvas_render import __version__
from canvas_render.core.rendering.asset_cache import AssetCacheError
from canvas_render.core.rendering.pipeline import RenderPipeline, get_render_pipeline
from canvas_render.models.schemas import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/api/", response_class=PlainTextResponse)
async def index() -> str:
    """API root greeting."""
    return "Hello canvas-render!"


@router.get("/api/ping", response_class=PlainTextResponse)
async def ping() -> str:
    """Liveness probe."""
    return "success"


@router.get("/health", response_model=HealthStatus)
async def health_check(pipeline: RenderPipeline = Depends(get_render_pipeline)) -> HealthStatus:
    """
    Report component state without launching anything.

    The browser starts lazily, so ``uninitialized`` is healthy; only a
    missing writable cache directory degrades the status.
    """
    try:
        cache_dir = str(pipeline.asset_cache.select_directory())
    except AssetCacheError:
        cache_dir = None

    return HealthStatus(
        status="healthy" if cache_dir else "degraded",
        version=__version__,
        browser=pipeline.browser_pool.state,
        image_cache_dir=cache_dir,
        fonts_indexed=len(pipeline.font_resolver),
    )
