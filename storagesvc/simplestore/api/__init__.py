"""
API module for simplestore.

This module provides the external interface: an aiohttp REST server that
authenticates requests through the session authority and delegates to the
account and file services.

Invariants:
    - All file operations require the X-Session header
    - JSON request/response format, except raw file bodies

How to change safely:
    - Keep endpoint status codes stable; clients branch on them
"""

from .http_server import Services, create_http_app

__all__ = [
    "Services",
    "create_http_app",
]
