"""
API module for sections-rw.

This module provides the external interface:
- HTTP server (FastAPI) exposing the sections service

Invariants:
    - Handlers only call SectionsService operations
    - Error classes map to status codes in one place

How to change safely:
    - Add new endpoints, don't change existing paths or wire names
"""

from .http_server import create_http_app, router
from .schemas import SectionPayload

__all__ = [
    "create_http_app",
    "router",
    "SectionPayload",
]
