"""
Shared fixtures: a small catalog schema and a store over it.
"""

import pytest

from dbaas.entstore_server.config import StoreConfig
from dbaas.entstore_server.schema import IdStrategy, SchemaRegistry, field
from dbaas.entstore_server.store import EntityStore
from shop.entities import register_shop_types


@pytest.fixture
def registry():
    """Registry with product, category and review types (not frozen)."""
    registry = SchemaRegistry()
    registry.register(
        "category",
        [
            field("name", "string", indexed=True, required=True),
            field("parentId", "string", indexed=True),
        ],
    )
    registry.register(
        "product",
        [
            field("name", "string", indexed=True, required=True),
            field("price", "float", indexed=True, required=True),
            field("stock", "integer", required=True, default=0),
            field("categoryId", "string"),
            field("createdAt", "datetime", indexed=True),
            field("isActive", "boolean", indexed=True, required=True, default=True),
            field("attributes", "json"),
        ],
    )
    registry.register(
        "review",
        [
            field("productId", "string", indexed=True, required=True),
            field("rating", "integer", required=True),
            field("content", "string"),
        ],
        IdStrategy.UUID,
    )
    return registry


@pytest.fixture
def store(registry):
    """Empty store over the catalog registry."""
    return EntityStore(registry, StoreConfig())


@pytest.fixture
def shop_store():
    """Empty store over the frozen shop schema."""
    registry = SchemaRegistry()
    register_shop_types(registry)
    registry.freeze()
    return EntityStore(registry)
