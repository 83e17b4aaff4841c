"""
Shop data model: entity types of the demo e-commerce catalog.

Relationships (child field -> parent):
    category.parentId      -> category.id
    product.categoryId     -> category.id
    product_tag.productId  -> product.id
    product_tag.tagId      -> tag.id
    order.userId           -> user.id
    order_item.orderId     -> order.id
    order_item.productId   -> product.id
    review.productId       -> product.id
    review.userId          -> user.id

Products and tags are many-to-many through product_tag.
"""

from __future__ import annotations

from dbaas.entstore_server.schema import EntityTypeDef, IdStrategy, SchemaRegistry, field
from sdk.entstore_sdk.cascade import CascadePolicy, Relationship

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

CATEGORY = EntityTypeDef(
    name="category",
    fields=(
        field("name", "string", indexed=True, required=True),
        field("description", "string"),
        field("slug", "string"),
        field("parentId", "string", indexed=True),
        field("position", "integer", indexed=True, required=True, default=0),
        field("isActive", "boolean", indexed=True, required=True, default=True),
        field("createdAt", "datetime", indexed=True, required=True),
    ),
    id_strategy=IdStrategy.AUTO_INCREMENT,
    description="Product category, optionally nested under a parent",
)

PRODUCT = EntityTypeDef(
    name="product",
    fields=(
        field("name", "string", indexed=True, required=True),
        field("description", "string"),
        field("price", "float", indexed=True, required=True),
        field("stock", "integer", indexed=True, required=True, default=0),
        field("sku", "string", indexed=True),
        field("createdAt", "datetime", indexed=True, required=True),
        field("updatedAt", "datetime"),
        field("isActive", "boolean", indexed=True, required=True, default=True),
        field("attributes", "json"),
        field("categoryId", "string", indexed=True, required=True),
    ),
    id_strategy=IdStrategy.AUTO_INCREMENT,
)

TAG = EntityTypeDef(
    name="tag",
    fields=(
        field("name", "string", indexed=True, required=True),
        field("slug", "string", indexed=True),
        field("color", "string"),
        field("counter", "integer", indexed=True, required=True, default=0),
        field("isActive", "boolean", indexed=True, required=True, default=True),
        field("createdAt", "datetime", indexed=True, required=True),
    ),
    id_strategy=IdStrategy.UUID,
)

PRODUCT_TAG = EntityTypeDef(
    name="product_tag",
    fields=(
        field("productId", "string", indexed=True, required=True),
        field("tagId", "string", indexed=True, required=True),
        field("createdAt", "datetime"),
    ),
    id_strategy=IdStrategy.UUID,
    description="Link between a product and a tag",
)

USER = EntityTypeDef(
    name="user",
    fields=(
        field("email", "string", indexed=True, required=True),
        field("firstName", "string", required=True),
        field("lastName", "string", required=True),
        field("phoneNumber", "string"),
        field("createdAt", "datetime", indexed=True, required=True),
        field("isActive", "boolean", indexed=True, required=True, default=True),
        field("preferences", "json"),
    ),
    id_strategy=IdStrategy.AUTO_INCREMENT,
)

ORDER = EntityTypeDef(
    name="order",
    fields=(
        field("orderNumber", "string", indexed=True, required=True),
        field("status", "string", indexed=True, required=True, default=ORDER_STATUS_PENDING),
        field("totalAmount", "float", indexed=True, required=True),
        field("userId", "string", indexed=True, required=True),
        field("createdAt", "datetime", indexed=True, required=True),
        field("completedAt", "datetime"),
        field("shippingAddress", "json"),
        field("billingAddress", "json"),
    ),
    id_strategy=IdStrategy.UUID,
)

ORDER_ITEM = EntityTypeDef(
    name="order_item",
    fields=(
        field("productId", "string", indexed=True, required=True),
        field("orderId", "string", indexed=True, required=True),
        field("productName", "string", required=True),
        field("productSku", "string"),
        field("price", "float", required=True),
        field("quantity", "integer", required=True),
        field("subtotal", "float", required=True),
        field("options", "json"),
        field("createdAt", "datetime", indexed=True, required=True),
    ),
    id_strategy=IdStrategy.UUID,
)

REVIEW = EntityTypeDef(
    name="review",
    fields=(
        field("productId", "string", indexed=True, required=True),
        field("userId", "string", indexed=True, required=True),
        field("rating", "integer", indexed=True, required=True),
        field("title", "string"),
        field("content", "string", required=True),
        field("isVerified", "boolean", indexed=True, required=True, default=False),
        field("isApproved", "boolean", indexed=True, required=True, default=False),
        field("createdAt", "datetime", indexed=True, required=True),
    ),
    id_strategy=IdStrategy.UUID,
)

SHOP_TYPES = (CATEGORY, PRODUCT, TAG, PRODUCT_TAG, USER, ORDER, ORDER_ITEM, REVIEW)

SHOP_CASCADES = CascadePolicy(
    [
        Relationship("category", "category", "parentId"),
        Relationship("category", "product", "categoryId"),
        Relationship("product", "review", "productId"),
        Relationship("product", "product_tag", "productId"),
        Relationship("tag", "product_tag", "tagId"),
        Relationship("order", "order_item", "orderId"),
        Relationship("user", "order", "userId"),
        Relationship("user", "review", "userId"),
    ]
)


def register_shop_types(registry: SchemaRegistry) -> list[EntityTypeDef]:
    """Register every shop entity type in a registry."""
    return [registry.register_entity_type(t) for t in SHOP_TYPES]
