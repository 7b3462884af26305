"""
HTML Generator
==============

Compose canvas elements into a self-contained HTML document for screenshotting.
Fonts and image locations are resolved beforehand; this module does no I/O
beyond loading its own template.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from pathlib import Path
import jinja2

from canvas_render.config.logging import get_logger
from canvas_render.models.schemas import CanvasElement, ElementType, RenderRequest

logger = get_logger(__name__)

DEFAULT_FONT_FAMILY = "Arial, sans-serif"
DEFAULT_FONT_WEIGHT = "normal"
DEFAULT_LINE_HEIGHT = 1.5
VERTICAL_LETTER_SPACING = "0.2em"


class HTMLGenerationError(Exception):
    """Exception raised when HTML generation fails."""

    pass


def escape_text(text: str) -> str:
    """Escape the three markup characters text nodes cannot carry raw."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def escape_attribute(value: str) -> str:
    """Escape a value for a double-quoted attribute."""
    return escape_text(value).replace('"', "&quot;")


def css_number(value: Union[int, float]) -> str:
    """Format a number for CSS without a trailing ``.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def px(value: Union[int, float]) -> str:
    """Convert numeric value to CSS pixels."""
    return f"{css_number(value)}px"


class CanvasHTMLGenerator:
    """Jinja2-based compositor for absolutely positioned text and image boxes."""

    template_name = "canvas.html"

    def __init__(self) -> None:
        self.logger: Any = logger.bind(generator="canvas")  # structlog.BoundLoggerBase
        self._setup_jinja2_environment()
        self.element_renderers: Dict[str, Callable[[CanvasElement, str, Mapping[str, str]], str]] = {
            ElementType.TEXT.value: self._render_text,
            ElementType.IMAGE.value: self._render_image,
        }

    def _setup_jinja2_environment(self) -> None:
        """Setup Jinja2 template environment."""
        template_dir = Path(__file__).parent / "templates"
        # Text nodes are escaped by escape_text; CSS must reach the template verbatim.
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            autoescape=False,
            undefined=jinja2.StrictUndefined,
        )
        self.env.filters["px"] = px

    def generate(
        self,
        request: RenderRequest,
        font_faces: Optional[Mapping[str, str]] = None,
        image_sources: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Generate the canvas document.

        Args:
            request: Canvas size and ordered elements
            font_faces: Font family name to embedded ``data:`` URI
            image_sources: Original image URL to the location the page loads

        Returns:
            Generated HTML string

        Raises:
            HTMLGenerationError: If template rendering fails
        """
        font_faces = dict(font_faces or {})
        image_sources = image_sources or {}

        blocks: List[str] = []
        for index, element in enumerate(request.elements):
            renderer = self.element_renderers.get(element.type or "")
            if renderer is None:
                self.logger.debug("Skipping unsupported element", index=index, type=element.type)
                continue
            block = renderer(element, self._box_style(element, index), image_sources)
            if block:
                blocks.append(block)

        try:
            template = self.env.get_template(self.template_name)
            html = template.render(
                width=request.width,
                height=request.height,
                font_faces=font_faces,
                blocks=blocks,
            )
        except jinja2.TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            self.logger.error("HTML generation failed", error=error_msg)
            raise HTMLGenerationError(error_msg)

        self.logger.debug(
            "HTML generation completed",
            elements=len(blocks),
            font_faces=len(font_faces),
            html_length=len(html),
        )
        return html

    def _box_style(self, element: CanvasElement, index: int) -> str:
        return (
            f"left:{px(element.x)};top:{px(element.y)};"
            f"width:{px(element.width)};height:{px(element.height)};"
            f"opacity:{css_number(element.opacity)};z-index:{index};"
        )

    def _render_text(
        self, element: CanvasElement, box_style: str, image_sources: Mapping[str, str]
    ) -> str:
        """Render text element."""
        if not element.content:
            return ""

        declarations: List[str] = []
        if element.font_size is not None:
            declarations.append(f"font-size:{px(element.font_size)}")
        if element.color:
            declarations.append(f"color:{element.color}")
        declarations.append(f"font-family:{element.font_family or DEFAULT_FONT_FAMILY}")
        declarations.append(f"font-weight:{element.font_weight or DEFAULT_FONT_WEIGHT}")
        line_height = element.line_height if element.line_height is not None else DEFAULT_LINE_HEIGHT
        declarations.append(f"line-height:{css_number(line_height)}")
        declarations.append(f"letter-spacing:{self._letter_spacing(element)}")

        classes = "text-inner vertical" if element.is_vertical else "text-inner"
        text_style = escape_attribute(";".join(declarations) + ";")
        return (
            f'<div class="element" style="{box_style}">'
            f'<div class="{classes}" style="{text_style}">{escape_text(element.content)}</div>'
            f"</div>"
        )

    def _letter_spacing(self, element: CanvasElement) -> str:
        if element.letter_spacing is not None:
            return px(element.letter_spacing)
        return VERTICAL_LETTER_SPACING if element.is_vertical else "0px"

    def _render_image(
        self, element: CanvasElement, box_style: str, image_sources: Mapping[str, str]
    ) -> str:
        """Render image element."""
        if not element.src:
            return ""
        src = image_sources.get(element.src, element.src)
        return (
            f'<div class="element" style="{box_style}">'
            f'<img src="{escape_attribute(src)}" class="image-inner" />'
            f"</div>"
        )


_global_html_generator: Optional[CanvasHTMLGenerator] = None


def generate_html(
    request: RenderRequest,
    font_faces: Optional[Mapping[str, str]] = None,
    image_sources: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Generate the canvas document with the shared generator.

    Args:
        request: Canvas size and ordered elements
        font_faces: Font family name to embedded ``data:`` URI
        image_sources: Original image URL to the location the page loads

    Returns:
        Generated HTML string
    """
    global _global_html_generator
    if _global_html_generator is None:
        _global_html_generator = CanvasHTMLGenerator()
    return _global_html_generator.generate(request, font_faces, image_sources)
