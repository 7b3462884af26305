"""
Rendering Module
===============

HTML composition and PNG capture with browser automation.

Components:
- asset_cache: Content-addressed download cache for remote images
- font_resolver: Local font index and data URI embedding
- html_generator: Convert canvas elements to HTML markup
- png_generator: Shared browser and per-request PNG capture
- pipeline: Request orchestration
"""
