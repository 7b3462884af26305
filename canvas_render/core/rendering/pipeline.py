"""
Render Pipeline
===============

End-to-end handling of one render request: acquire the shared browser,
resolve images and fonts, compose the document, capture it.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from canvas_render.config.logging import get_logger
from canvas_render.core.rendering.asset_cache import AssetCache, close_asset_cache, get_asset_cache
from canvas_render.core.rendering.font_resolver import FontResolver, get_font_resolver
from canvas_render.core.rendering.html_generator import (
    CanvasHTMLGenerator,
    HTMLGenerationError,
)
from canvas_render.core.rendering.png_generator import (
    BrowserLaunchError,
    BrowserPool,
    PlaywrightPNGGenerator,
    PNGGenerationError,
    close_browser_pool,
    get_browser_pool,
)
from canvas_render.models.schemas import CanvasElement, RenderRequest, RenderResult

logger = get_logger(__name__)


class RenderError(Exception):
    """A render request failed; carries the time spent before failing."""

    def __init__(self, message: str, elapsed_ms: int, browser_unavailable: bool = False):
        super().__init__(message)
        self.elapsed_ms = elapsed_ms
        self.browser_unavailable = browser_unavailable


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class RenderPipeline:
    """Orchestrates one render per ``render`` call over shared components."""

    def __init__(
        self,
        browser_pool: Optional[BrowserPool] = None,
        asset_cache: Optional[AssetCache] = None,
        font_resolver: Optional[FontResolver] = None,
        html_generator: Optional[CanvasHTMLGenerator] = None,
        png_generator: Optional[PlaywrightPNGGenerator] = None,
    ):
        self.browser_pool = browser_pool or get_browser_pool()
        self.asset_cache = asset_cache or get_asset_cache()
        self.font_resolver = font_resolver or get_font_resolver()
        self.html_generator = html_generator or CanvasHTMLGenerator()
        self.png_generator = png_generator or PlaywrightPNGGenerator()
        self.logger: Any = logger.bind(component="render_pipeline")  # structlog.BoundLoggerBase

    async def render(self, request: RenderRequest) -> RenderResult:
        """
        Render a request to PNG.

        Args:
            request: Canvas size and elements

        Returns:
            RenderResult with the PNG bytes

        Raises:
            RenderError: If the browser is unavailable or the document
                failed to load or capture
        """
        started = time.perf_counter()
        self._log_request(request)

        try:
            browser = await self.browser_pool.acquire()

            image_sources = await self._resolve_images(request.elements)
            font_faces = self._resolve_fonts(request.elements)
            html_content = self.html_generator.generate(request, font_faces, image_sources)

            png_data = await self.png_generator.capture(
                browser, html_content, request.pixel_width, request.pixel_height
            )
        except BrowserLaunchError as e:
            elapsed = _elapsed_ms(started)
            self.logger.error("Render failed, browser unavailable", elapsed_ms=elapsed, error=str(e))
            raise RenderError(str(e), elapsed, browser_unavailable=True) from e
        except (PNGGenerationError, HTMLGenerationError) as e:
            elapsed = _elapsed_ms(started)
            self.logger.error("Render failed", elapsed_ms=elapsed, error=str(e))
            raise RenderError(str(e), elapsed) from e
        except Exception as e:
            elapsed = _elapsed_ms(started)
            self.logger.error("Unexpected render error", elapsed_ms=elapsed, error=str(e), exc_info=True)
            raise RenderError(f"Unexpected render error: {e}", elapsed) from e

        elapsed = _elapsed_ms(started)
        self.logger.info("Render completed", elapsed_ms=elapsed, file_size=len(png_data))
        return RenderResult(
            png_data=png_data,
            width=request.pixel_width,
            height=request.pixel_height,
            file_size=len(png_data),
            elapsed_ms=elapsed,
        )

    def _log_request(self, request: RenderRequest) -> None:
        elements = request.elements
        self.logger.info(
            "Render started",
            width=request.width,
            height=request.height,
            elements=len(elements),
            images=sum(1 for el in elements if el.is_image),
            texts=sum(1 for el in elements if el.is_text),
            custom_fonts=sum(1 for el in elements if el.is_text and el.custom_font_url),
        )

    async def _resolve_images(self, elements: List[CanvasElement]) -> Dict[str, str]:
        """Map each distinct image URL to the location the page should load."""
        urls = list(dict.fromkeys(el.src for el in elements if el.is_image and el.src))
        if not urls:
            return {}

        resolved = await asyncio.gather(*(self.asset_cache.resolve(url) for url in urls))
        sources: Dict[str, str] = {}
        for url, location in zip(urls, resolved):
            sources[url] = url if location == url else Path(location).as_uri()
        return sources

    def _resolve_fonts(self, elements: List[CanvasElement]) -> Dict[str, str]:
        """Map each distinct text font family to an embedded data URI, where one exists."""
        font_faces: Dict[str, str] = {}
        families = dict.fromkeys(el.font_family for el in elements if el.is_text and el.font_family)
        for family in families:
            data_uri = self.font_resolver.embed(family)
            if data_uri is not None:
                font_faces[family] = data_uri
        return font_faces


_global_pipeline: Optional[RenderPipeline] = None


def get_render_pipeline() -> RenderPipeline:
    """Get the process-wide render pipeline."""
    global _global_pipeline
    if _global_pipeline is None:
        _global_pipeline = RenderPipeline()
    return _global_pipeline


async def render_canvas(request: RenderRequest) -> RenderResult:
    """Render a request with the shared pipeline."""
    return await get_render_pipeline().render(request)


async def close_render_pipeline() -> None:
    """Release the shared browser and HTTP session."""
    global _global_pipeline
    _global_pipeline = None
    await close_browser_pool()
    await close_asset_cache()
