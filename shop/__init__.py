"""
Shop: demo e-commerce data model on top of EntStore.

Entity types, cascade relationships and repositories for categories,
products, tags, users, orders, order items and reviews.
"""

from .entities import (
    CATEGORY,
    ORDER,
    ORDER_ITEM,
    ORDER_STATUSES,
    PRODUCT,
    PRODUCT_TAG,
    REVIEW,
    SHOP_CASCADES,
    SHOP_TYPES,
    TAG,
    USER,
    register_shop_types,
)
from .repositories import (
    CategoryRepository,
    OrderRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)

__all__ = [
    # Entity types
    "CATEGORY",
    "ORDER",
    "ORDER_ITEM",
    "ORDER_STATUSES",
    "PRODUCT",
    "PRODUCT_TAG",
    "REVIEW",
    "SHOP_CASCADES",
    "SHOP_TYPES",
    "TAG",
    "USER",
    "register_shop_types",
    # Repositories
    "CategoryRepository",
    "OrderRepository",
    "ProductRepository",
    "ReviewRepository",
    "UserRepository",
]
