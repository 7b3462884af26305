"""
Font Resolver
=============

Indexes a local directory of font files and turns font family names into
inline ``data:`` URIs usable in ``@font-face`` rules.
"""

import base64
import re
from pathlib import Path
from typing import Any, Dict, Optional

from canvas_render.config.logging import get_logger
from canvas_render.config.settings import get_settings

logger = get_logger(__name__)

FONT_EXTENSIONS = frozenset({".ttf", ".otf", ".woff", ".woff2"})

FONT_MIME_TYPES = {
    ".otf": "font/otf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}
DEFAULT_FONT_MIME_TYPE = "font/ttf"

_WHITESPACE = re.compile(r"\s+")


def normalize_font_name(name: str) -> str:
    """Lowercase and drop all whitespace."""
    return _WHITESPACE.sub("", name.lower())


class FontResolver:
    """Name to embeddable font lookup over a directory scanned once."""

    def __init__(self, fonts_dir: Optional[Path] = None):
        self.fonts_dir = Path(fonts_dir if fonts_dir is not None else get_settings().fonts_dir)
        self.logger: Any = logger.bind(component="font_resolver")  # structlog.BoundLoggerBase
        self._index: Dict[str, Path] = self._build_index()

    def _build_index(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        if not self.fonts_dir.is_dir():
            self.logger.warning("Font directory not found", fonts_dir=str(self.fonts_dir))
            return index

        for font_file in sorted(self.fonts_dir.iterdir()):
            if not font_file.is_file() or font_file.suffix.lower() not in FONT_EXTENSIONS:
                continue
            index[normalize_font_name(font_file.stem)] = font_file.resolve()
            self.logger.debug("Loaded local font", font=font_file.stem, path=str(font_file))

        self.logger.info("Font index built", fonts=len(index), fonts_dir=str(self.fonts_dir))
        return index

    @property
    def index(self) -> Dict[str, Path]:
        """Copy of the normalized name to path mapping."""
        return dict(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def embed(self, font_name: str) -> Optional[str]:
        """
        Resolve a font family name to a base64 ``data:`` URI.

        Tries an exact match on the normalized name, then the first indexed
        name that contains the query or is contained by it. Unreadable files
        are skipped.

        Args:
            font_name: Family name as written by the caller

        Returns:
            ``data:<mime>;base64,...`` or None when nothing usable matched
        """
        normalized = normalize_font_name(font_name)
        if not normalized:
            return None

        exact = self._index.get(normalized)
        if exact is not None:
            data_uri = self._encode(exact)
            if data_uri is not None:
                self.logger.debug("Font matched", font=font_name, path=str(exact))
                return data_uri

        for name, font_path in self._index.items():
            if font_path == exact:
                continue
            if name in normalized or normalized in name:
                data_uri = self._encode(font_path)
                if data_uri is not None:
                    self.logger.debug("Font fuzzy matched", font=font_name, matched=name)
                    return data_uri

        self.logger.warning("Font not found, using fallback", font=font_name)
        return None

    def _encode(self, font_path: Path) -> Optional[str]:
        try:
            payload = font_path.read_bytes()
        except OSError as e:
            self.logger.error("Failed to read font file", path=str(font_path), error=str(e))
            return None
        mime_type = FONT_MIME_TYPES.get(font_path.suffix.lower(), DEFAULT_FONT_MIME_TYPE)
        return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


_global_font_resolver: Optional[FontResolver] = None


def get_font_resolver() -> FontResolver:
    """Get the process-wide font resolver, building the index on first use."""
    global _global_font_resolver
    if _global_font_resolver is None:
        _global_font_resolver = FontResolver()
    return _global_font_resolver
