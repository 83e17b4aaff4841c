"""
Repositories of the shop model.

Each repository manages one shop entity type and adds the named queries
the catalog, ordering and review screens need. Statistics methods return
plain dicts with snake_case keys.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from dbaas.entstore_server.errors import ValidationError
from dbaas.entstore_server.query import JoinedRecord, Query, eq, gte, in_
from dbaas.entstore_server.storage import Record
from dbaas.entstore_server.store import EntityStore
from sdk.entstore_sdk import EntityRepository

from .entities import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    ORDER_STATUSES,
)

# Fuzzy acceptance used by every name search
SEARCH_THRESHOLD = 0.7
SEARCH_MAX_DISTANCE = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShopRepository(EntityRepository):
    """Base repository that stamps createdAt on create when absent."""

    entity_type_name: str = ""

    def __init__(self, store: EntityStore) -> None:
        super().__init__(store, self.entity_type_name)

    def prepare(self, fields: dict[str, Any]) -> dict[str, Any]:
        definition = self.store.registry.require_entity_type(self.entity_type)
        if definition.get_field("createdAt") is not None and fields.get("createdAt") is None:
            fields["createdAt"] = utcnow()
        return fields


class CategoryRepository(ShopRepository):
    entity_type_name = "category"

    def find_root_categories(self) -> list[Record]:
        """Active categories without a parent, by position."""
        return (
            self.create_query_builder()
            .eq("parentId", None)
            .eq("isActive", True)
            .order_by("position")
            .get_result()
        )

    def find_child_categories(self, parent_id: str) -> list[Record]:
        return (
            self.create_query_builder()
            .eq("parentId", parent_id)
            .eq("isActive", True)
            .order_by("position")
            .get_result()
        )

    def find_categories_with_products(self, limit: int | None = 20) -> list[JoinedRecord]:
        """Active categories that have products, each with its "products"."""
        return (
            self.create_join_query_builder()
            .eq("isActive", True)
            .inner_join("product", "id", "categoryId", "products")
            .order_by("position")
            .limit(limit)
            .get_join_result()
        )

    def find_categories_with_min_products(self, min_products: int = 5) -> list[JoinedRecord]:
        return [
            category
            for category in self.find_categories_with_products(limit=None)
            if len(category.joined["products"]) >= min_products
        ]

    def build_category_tree(self) -> list[dict[str, Any]]:
        """Nested {"category": Record, "children": [...]} nodes for the root categories.

        Categories whose parent does not exist are left out.
        """
        nodes = {c.id: {"category": c, "children": []} for c in self.find_all()}
        roots: list[dict[str, Any]] = []
        for node in nodes.values():
            parent_id = node["category"]["parentId"]
            if parent_id is None:
                roots.append(node)
            elif parent_id in nodes:
                nodes[parent_id]["children"].append(node)
        return roots

    def get_category_path_to_root(self, category_id: str, max_depth: int = 10) -> list[Record]:
        """Categories from the root down to category_id.

        Stops after max_depth steps so that parent cycles terminate.
        """
        path: list[Record] = []
        current_id: str | None = category_id
        while current_id is not None and len(path) < max_depth:
            category = self.find(current_id)
            if category is None:
                break
            path.append(category)
            current_id = category["parentId"]
        path.reverse()
        return path

    def search_by_name(self, term: str, limit: int = 20) -> list[Record]:
        return (
            self.create_query_builder()
            .fuzzy("name", term)
            .eq("isActive", True)
            .set_fuzzy_options(SEARCH_THRESHOLD, SEARCH_MAX_DISTANCE)
            .limit(limit)
            .get_result()
        )

    def get_category_statistics(self) -> dict[str, Any]:
        total_depth = 0
        nested = 0
        for category in self.find_all():
            depth = len(self.get_category_path_to_root(category.id)) - 1
            if depth > 0:
                total_depth += depth
                nested += 1
        return {
            "total_count": self.count(),
            "active_count": self.count({"isActive": True}),
            "root_count": self.count({"parentId": None}),
            "avg_depth": total_depth / nested if nested else 0.0,
        }


class ProductRepository(ShopRepository):
    entity_type_name = "product"

    def find_by_price_range(
        self, min_price: float, max_price: float, limit: int | None = 100
    ) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("price", min_price)
            .lte("price", max_price)
            .order_by("price")
            .limit(limit)
            .get_result()
        )

    def find_low_stock_products(self, threshold: int = 10) -> list[Record]:
        """Active products with 0 < stock <= threshold, lowest stock first."""
        return (
            self.create_query_builder()
            .lte("stock", threshold)
            .gt("stock", 0)
            .eq("isActive", True)
            .order_by("stock")
            .get_result()
        )

    def find_by_category_with_tags(
        self,
        category_id: str,
        tag_ids: Iterable[str] | None = None,
        limit: int | None = 50,
    ) -> list[Record] | list[JoinedRecord]:
        """Active products of a category.

        With tag_ids, only products carrying one of those tags are returned,
        as JoinedRecords with their "tags".
        """
        tag_ids = list(tag_ids or ())
        if not tag_ids:
            return (
                self.create_query_builder()
                .eq("categoryId", category_id)
                .eq("isActive", True)
                .limit(limit)
                .get_result()
            )
        return (
            self.create_join_query_builder()
            .eq("categoryId", category_id)
            .eq("isActive", True)
            .inner_join("product_tag", "id", "productId", "productTags")
            .inner_join("tag", "productTags.tagId", "id", "tags")
            .add_join_filter(in_("id", tag_ids))
            .limit(limit)
            .get_join_result()
        )

    def find_popular_products(self, limit: int = 10) -> list[JoinedRecord]:
        """Active products that were ordered, most order items first."""
        ordered = (
            self.create_join_query_builder()
            .eq("isActive", True)
            .inner_join("order_item", "id", "productId", "orderItems")
            .get_join_result()
        )
        ordered.sort(key=lambda p: len(p.joined["orderItems"]), reverse=True)
        return ordered[:limit]

    def search_products(self, term: str, limit: int = 25) -> list[Record]:
        return (
            self.create_query_builder()
            .fuzzy("name", term)
            .eq("isActive", True)
            .set_fuzzy_options(SEARCH_THRESHOLD, SEARCH_MAX_DISTANCE)
            .limit(limit)
            .get_result()
        )

    def find_products_with_reviews(
        self, min_rating: int = 4, limit: int | None = 20
    ) -> list[JoinedRecord]:
        """Active products with at least one review rated >= min_rating."""
        return (
            self.create_join_query_builder()
            .eq("isActive", True)
            .inner_join("review", "id", "productId", "reviews")
            .add_join_filter(gte("rating", min_rating))
            .limit(limit)
            .get_join_result()
        )

    def add_tag(self, product_id: str, tag_id: str) -> Record:
        """Link a product to a tag and bump the tag's usage counter."""
        self.get(product_id)
        tag = self.store.get_by_id("tag", tag_id)
        link = self.store.create(
            "product_tag", {"productId": product_id, "tagId": tag_id, "createdAt": utcnow()}
        )
        self.store.patch("tag", tag_id, {"counter": tag["counter"] + 1})
        return link

    def remove_tag(self, product_id: str, tag_id: str) -> bool:
        links = self.store.query(
            Query("product_tag", (eq("productId", product_id), eq("tagId", tag_id)))
        )
        for link in links:
            self.store.delete("product_tag", link.id)
        if links:
            tag = self.store.get_by_id("tag", tag_id)
            self.store.patch("tag", tag_id, {"counter": max(0, tag["counter"] - len(links))})
        return bool(links)

    def get_product_statistics(self) -> dict[str, Any]:
        products = self.find_all()
        return {
            "total_count": len(products),
            "active_count": self.count({"isActive": True}),
            "out_of_stock_count": self.count({"stock": 0}),
            "avg_price": sum(p["price"] for p in products) / len(products) if products else 0.0,
        }


class OrderRepository(ShopRepository):
    entity_type_name = "order"

    def prepare(self, fields: dict[str, Any]) -> dict[str, Any]:
        status = fields.setdefault("status", ORDER_STATUS_PENDING)
        if status not in ORDER_STATUSES:
            raise ValidationError(
                f"Invalid order status '{status}'",
                entity_type=self.entity_type,
                errors=[f"status must be one of {list(ORDER_STATUSES)}"],
            )
        return super().prepare(fields)

    def find_by_status(self, status: str, limit: int | None = 50) -> list[Record]:
        return (
            self.create_query_builder()
            .eq("status", status)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_by_date_range(
        self, start: datetime, end: datetime, limit: int | None = 100
    ) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("createdAt", start)
            .lte("createdAt", end)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_by_user(self, user_id: str, limit: int | None = 50) -> list[Record]:
        return (
            self.create_query_builder()
            .eq("userId", user_id)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_orders_with_items_by_user(
        self, user_id: str, limit: int | None = 20
    ) -> list[JoinedRecord]:
        return (
            self.create_join_query_builder()
            .eq("userId", user_id)
            .inner_join("order_item", "id", "orderId", "items")
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_join_result()
        )

    def find_orders_containing_product(
        self, product_id: str, limit: int | None = 20
    ) -> list[JoinedRecord]:
        """Orders with an item of product_id; "items" holds only those items."""
        return (
            self.create_join_query_builder()
            .inner_join("order_item", "id", "orderId", "items")
            .add_join_filter(eq("productId", product_id))
            .limit(limit)
            .get_join_result()
        )

    def find_by_total_amount_range(
        self, min_amount: float, max_amount: float, limit: int | None = 50
    ) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("totalAmount", min_amount)
            .lte("totalAmount", max_amount)
            .order_by("totalAmount", "DESC")
            .limit(limit)
            .get_result()
        )

    def get_order_statistics(self) -> dict[str, Any]:
        """Counts per status plus revenue of the orders that were not cancelled."""
        orders = self.find_all()
        billable = [o for o in orders if o["status"] != ORDER_STATUS_CANCELLED]
        revenue = sum(o["totalAmount"] for o in billable)
        return {
            "total_count": len(orders),
            "pending_count": self.count({"status": ORDER_STATUS_PENDING}),
            "completed_count": self.count({"status": ORDER_STATUS_COMPLETED}),
            "cancelled_count": self.count({"status": ORDER_STATUS_CANCELLED}),
            "total_revenue": revenue,
            "average_order_value": revenue / len(billable) if billable else 0.0,
        }


class ReviewRepository(ShopRepository):
    entity_type_name = "review"

    def find_by_product(self, product_id: str, limit: int | None = 20) -> list[Record]:
        """Approved reviews of a product, newest first."""
        return (
            self.create_query_builder()
            .eq("productId", product_id)
            .eq("isApproved", True)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_by_user(self, user_id: str, limit: int | None = 20) -> list[Record]:
        return (
            self.create_query_builder()
            .eq("userId", user_id)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_top_rated_reviews(self, min_rating: int = 4, limit: int | None = 20) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("rating", min_rating)
            .eq("isApproved", True)
            .order_by("rating", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_pending_reviews(self, limit: int | None = 50) -> list[Record]:
        """Reviews awaiting approval, oldest first."""
        return (
            self.create_query_builder()
            .eq("isApproved", False)
            .order_by("createdAt")
            .limit(limit)
            .get_result()
        )

    def find_recent_reviews(self, days: int = 30, limit: int | None = 20) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("createdAt", utcnow() - timedelta(days=days))
            .eq("isApproved", True)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_reviews_with_product_and_user(self, limit: int | None = 20) -> list[JoinedRecord]:
        return (
            self.create_join_query_builder()
            .eq("isApproved", True)
            .inner_join("product", "productId", "id", "product")
            .inner_join("user", "userId", "id", "user")
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_join_result()
        )

    def calculate_average_rating(self, product_id: str) -> float:
        reviews = self.find_by_product(product_id, limit=None)
        if not reviews:
            return 0.0
        return sum(r["rating"] for r in reviews) / len(reviews)

    def count_reviews_by_rating(self, product_id: str) -> dict[int, int]:
        counts = {rating: 0 for rating in range(1, 6)}
        for review in self.find_by_product(product_id, limit=None):
            if review["rating"] in counts:
                counts[review["rating"]] += 1
        return counts

    def get_review_statistics(self) -> dict[str, Any]:
        reviews = self.find_all()
        distribution = {rating: 0 for rating in range(1, 6)}
        for review in reviews:
            if review["rating"] in distribution:
                distribution[review["rating"]] += 1
        return {
            "total_count": len(reviews),
            "approved_count": self.count({"isApproved": True}),
            "pending_count": self.count({"isApproved": False}),
            "verified_count": self.count({"isVerified": True}),
            "average_rating": (
                sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0.0
            ),
            "rating_distribution": distribution,
        }


class UserRepository(ShopRepository):
    entity_type_name = "user"

    def find_by_email_pattern(self, pattern: str, limit: int | None = 20) -> list[Record]:
        """Active users whose email contains pattern, newest first."""
        return (
            self.create_query_builder()
            .contains("email", pattern)
            .eq("isActive", True)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_recently_registered(self, days: int = 30, limit: int | None = 50) -> list[Record]:
        return (
            self.create_query_builder()
            .gte("createdAt", utcnow() - timedelta(days=days))
            .eq("isActive", True)
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_result()
        )

    def find_users_with_orders(self, limit: int | None = 50) -> list[JoinedRecord]:
        return (
            self.create_join_query_builder()
            .eq("isActive", True)
            .inner_join("order", "id", "userId", "orders")
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_join_result()
        )

    def find_users_with_reviews(self, limit: int | None = 50) -> list[JoinedRecord]:
        return (
            self.create_join_query_builder()
            .eq("isActive", True)
            .inner_join("review", "id", "userId", "reviews")
            .order_by("createdAt", "DESC")
            .limit(limit)
            .get_join_result()
        )

    def search_by_name(self, term: str, limit: int = 20) -> list[Record]:
        """Active users whose first or last name fuzzily matches term.

        First-name matches come first; each user appears once.
        """
        results: list[Record] = []
        seen: set[str] = set()
        for name_field in ("firstName", "lastName"):
            matches = (
                self.create_query_builder()
                .fuzzy(name_field, term)
                .eq("isActive", True)
                .set_fuzzy_options(SEARCH_THRESHOLD, SEARCH_MAX_DISTANCE)
                .limit(limit)
                .get_result()
            )
            for user in matches:
                if user.id not in seen:
                    seen.add(user.id)
                    results.append(user)
        return results[:limit]

    def find_top_customers(self, limit: int = 10) -> list[JoinedRecord]:
        """Active users with orders, most orders first."""
        customers = self.find_users_with_orders(limit=None)
        customers.sort(key=lambda u: len(u.joined["orders"]), reverse=True)
        return customers[:limit]

    def get_user_statistics(self) -> dict[str, Any]:
        with_orders = (
            self.create_join_query_builder()
            .inner_join("order", "id", "userId", "orders")
            .count()
        )
        return {
            "total_count": self.count(),
            "active_count": self.count({"isActive": True}),
            "with_orders_count": with_orders,
        }
