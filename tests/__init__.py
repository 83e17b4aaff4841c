"""
EntStore Test Suite.

This package contains:
- unit/: Unit tests (schema, storage, query and join engines, SDK)
- integration/: Integration tests (shop repositories, aiohttp JSON API)
"""
