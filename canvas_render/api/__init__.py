"""
FastAPI REST Endpoints
======================

HTTP access to the rendering pipeline.

Endpoints:
- POST /api/generate: Render a canvas to PNG
- GET /api/ping: Liveness probe
- GET /health: Component health
"""
