"""
Pydantic Models and Schemas
===========================

Core data models for render requests, canvas elements and render results.
Wire names are camelCase; snake_case field names are accepted as well.
"""

import math
from typing import Optional, List, Literal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from canvas_render.config.settings import get_settings


class ElementType(str, Enum):
    """Canvas element types understood by the compositor."""

    TEXT = "text"
    IMAGE = "image"


VERTICAL_WRITING_MODES = frozenset({"vertical", "vertical-rl"})


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))


class CanvasElement(BaseModel):
    """
    A positioned text or image box.

    One flat model carries the fields of both kinds; ``type`` selects which
    ones the compositor reads. Elements with a missing or unknown type are
    accepted and skipped at render time.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Optional[str] = Field(None, description="Element type: text or image")

    # Box
    x: float = Field(0, description="Left offset in pixels")
    y: float = Field(0, description="Top offset in pixels")
    width: float = Field(0, description="Width in pixels")
    height: float = Field(0, description="Height in pixels")
    opacity: float = Field(1, description="CSS opacity; the browser clamps values outside 0..1")

    # Text
    content: Optional[str] = Field(None, description="Text content")
    font_size: Optional[float] = Field(None, alias="fontSize")
    color: Optional[str] = None
    font_family: Optional[str] = Field(None, alias="fontFamily")
    font_weight: Optional[str] = Field(None, alias="fontWeight")
    line_height: Optional[float] = Field(None, alias="lineHeight")
    letter_spacing: Optional[float] = Field(None, alias="letterSpacing")
    writing_mode: Optional[str] = Field(None, alias="writingMode")
    custom_font_url: Optional[str] = Field(
        None, alias="customFontUrl", description="Accepted but never fetched"
    )

    # Image
    src: Optional[str] = Field(None, description="Absolute image URL")

    @property
    def is_text(self) -> bool:
        return self.type == ElementType.TEXT.value

    @property
    def is_image(self) -> bool:
        return self.type == ElementType.IMAGE.value

    @property
    def is_vertical(self) -> bool:
        return self.writing_mode in VERTICAL_WRITING_MODES


class RenderRequest(BaseModel):
    """Canvas size plus the ordered element list; list order is z-order."""

    model_config = ConfigDict(populate_by_name=True)

    width: float = Field(default_factory=lambda: get_settings().default_width, gt=0)
    height: float = Field(default_factory=lambda: get_settings().default_height, gt=0)
    elements: List[CanvasElement] = Field(default_factory=list)

    @property
    def pixel_width(self) -> int:
        return round_half_up(self.width)

    @property
    def pixel_height(self) -> int:
        return round_half_up(self.height)


class RenderResult(BaseModel):
    """Result of a successful render."""

    png_data: bytes = Field(..., description="PNG binary data", exclude=True)
    width: int = Field(..., description="Image width in CSS pixels")
    height: int = Field(..., description="Image height in CSS pixels")
    file_size: int = Field(..., description="File size in bytes")
    filename: str = Field("generated.png", description="Attachment filename hint")
    elapsed_ms: int = Field(0, description="Wall time of the render")


class ErrorResponse(BaseModel):
    """Error payload returned instead of an image."""

    error: str = Field(..., description="Short error summary")
    details: str = Field(..., description="Human-readable failure message")
    elapsed_ms: Optional[int] = Field(None, description="Time spent before the failure")


class HealthStatus(BaseModel):
    """Health check response."""

    status: Literal["healthy", "degraded"]
    version: str
    browser: str = Field(..., description="Browser pool state")
    image_cache_dir: Optional[str] = None
    fonts_indexed: int = 0
