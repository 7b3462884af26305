"""
Render Routes
=============

FastAPI route for on-demand canvas rendering.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse, Response

from canvas_render.config.logging import get_logger
from canvas_render.core.rendering.pipeline import RenderError, RenderPipeline, get_render_pipeline
from canvas_render.models.schemas import ErrorResponse, RenderRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Rendering"])


@router.post(
    "/generate",
    response_class=Response,
    responses={
        200: {"content": {"image/png": {}}, "description": "Rendered PNG"},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def generate(
    request: Optional[RenderRequest] = Body(None),
    pipeline: RenderPipeline = Depends(get_render_pipeline),
) -> Response:
    """Render the posted elements to a PNG attachment."""
    request = request or RenderRequest()
    try:
        result = await pipeline.render(request)
    except RenderError as e:
        error_response = ErrorResponse(
            error="generate failed", details=str(e), elapsed_ms=e.elapsed_ms
        )
        return JSONResponse(
            status_code=503 if e.browser_unavailable else 500,
            content=error_response.model_dump(mode="json"),
        )

    return Response(
        content=result.png_data,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )
