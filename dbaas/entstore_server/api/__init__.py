"""
API module for EntStore server.

This module provides the external interface: an aiohttp JSON API in
front of the EntityStore.

Invariants:
    - Endpoints have the same semantics as the store methods
    - Error bodies carry the error code of the raised EntStoreError

How to change safely:
    - Add new endpoints, don't change the meaning of existing ones
"""

from .http_server import create_http_app, run_http_server

__all__ = [
    "create_http_app",
    "run_http_server",
]
