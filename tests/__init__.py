"""
Test Suite
==========

Test suite mirroring the canvas_render package layout.

Test Categories:
- unit: Unit tests for individual components
- integration: HTTP layer tests against the FastAPI app
"""
