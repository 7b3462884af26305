"""
canvas-render
=============

Renders a declarative list of positioned text and image elements into a PNG
by compositing them into an off-screen HTML document and screenshotting it
with headless Chromium.

This package provides:
- Content-addressed image cache for remote assets
- Local font index with exact and fuzzy name matching
- HTML compositor for text and image boxes
- Shared, lazily launched Playwright browser
- FastAPI endpoint for on-demand rendering
"""

__version__ = "1.0.0"
__author__ = "canvas-render team"
