"""
Data Models
===========

Pydantic models for render requests, canvas elements and responses.
"""
