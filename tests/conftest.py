"""
Test Configuration
==================

Pytest configuration with fixtures shared by unit and integration tests.
No fixture starts a real browser or touches the network.
"""

import os

os.environ.setdefault("CANVAS_RENDER_ENVIRONMENT", "testing")
os.environ.setdefault("CANVAS_RENDER_LOG_LEVEL", "DEBUG")

from pathlib import Path
from typing import Generator

import pytest

from canvas_render.config.settings import Settings
from canvas_render.core.rendering.asset_cache import AssetCache
from canvas_render.core.rendering.font_resolver import FontResolver
from canvas_render.core.rendering.png_generator import PlaywrightPNGGenerator

from tests.utils.mocks import make_http_session


class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    log_level: str = "DEBUG"
    settle_delay_ms: int = 0
    wait_for_fonts: bool = False
    chrome_path: str | None = None


@pytest.fixture
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture
def fonts_dir(tmp_path: Path) -> Path:
    """Font directory with a few fake font files and one non-font file."""
    directory = tmp_path / "fonts"
    directory.mkdir()
    (directory / "NotoSansSC.ttf").write_bytes(b"ttf-noto")
    (directory / "Source Han Serif.otf").write_bytes(b"otf-source-han")
    (directory / "Inter.woff2").write_bytes(b"woff2-inter")
    (directory / "LICENSE.txt").write_text("not a font")
    return directory


@pytest.fixture
def font_resolver(fonts_dir: Path) -> FontResolver:
    """Font resolver over the fake font directory."""
    return FontResolver(fonts_dir)


@pytest.fixture
def cache_dirs(tmp_path: Path) -> Generator[tuple, None, None]:
    """Primary and fallback cache directories (not created yet)."""
    yield tmp_path / "image-cache", tmp_path / "fallback-cache"


@pytest.fixture
def asset_cache(cache_dirs: tuple) -> AssetCache:
    """Asset cache with a mocked HTTP session returning 200."""
    primary, fallback = cache_dirs
    cache = AssetCache(cache_dir=primary, fallback_dir=fallback, fetch_timeout=5)
    cache._session = make_http_session()
    return cache


@pytest.fixture
def png_generator(test_settings: TestSettings) -> PlaywrightPNGGenerator:
    """PNG generator without settle delay."""
    return PlaywrightPNGGenerator(settings=test_settings)


@pytest.fixture
def sample_request_data() -> dict:
    """Render request body with one image and one text element."""
    return {
        "width": 750,
        "height": 1334,
        "elements": [
            {
                "type": "image",
                "x": 0,
                "y": 0,
                "width": 750,
                "height": 1334,
                "src": "https://cdn.example.com/backgrounds/poster.jpg",
            },
            {
                "type": "text",
                "x": 40,
                "y": 100,
                "width": 670,
                "height": 80,
                "content": "Spring Festival",
                "fontSize": 48,
                "color": "#c00",
                "fontFamily": "Noto Sans SC",
                "fontWeight": "bold",
            },
        ],
    }
