"""
Core Business Logic
==================

Core modules for canvas composition and PNG capture.

Modules:
- rendering: asset cache, font resolver, HTML compositor, browser pool and pipeline
"""
