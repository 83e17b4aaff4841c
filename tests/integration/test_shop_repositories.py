"""
Integration tests for the shop repositories.

Tests cover:
- Category tree and path queries
- Product finders, tag links and search
- Order finders, status validation and statistics
- Review and user finders built on joins
- Cascading deletes through the shop relationships
"""

from datetime import datetime, timedelta, timezone

import pytest

from dbaas.entstore_server.errors import ValidationError
from sdk.entstore_sdk import cascade_delete
from shop import (
    SHOP_CASCADES,
    CategoryRepository,
    OrderRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def at(hours):
    return T0 + timedelta(hours=hours)


@pytest.fixture
def repos(shop_store):
    return {
        "category": CategoryRepository(shop_store),
        "product": ProductRepository(shop_store),
        "order": OrderRepository(shop_store),
        "review": ReviewRepository(shop_store),
        "user": UserRepository(shop_store),
    }


@pytest.fixture
def shop(shop_store, repos):
    """A small shop: two root categories, one child, four products, two users."""
    categories = repos["category"]
    furniture = categories.create({"name": "Furniture", "position": 1})
    lighting = categories.create({"name": "Lighting", "position": 0})
    desks = categories.create({"name": "Desks", "parentId": furniture.id, "position": 0})

    products = repos["product"]
    products.create({"name": "Oak Desk", "price": 250.0, "stock": 3, "categoryId": desks.id})
    products.create({"name": "Pine Desk", "price": 150.0, "stock": 0, "categoryId": desks.id})
    products.create({"name": "Floor Lamp", "price": 60.0, "stock": 8, "categoryId": lighting.id})
    products.create(
        {"name": "Desk Lamp", "price": 35.0, "stock": 20, "categoryId": lighting.id, "isActive": False}
    )

    users = repos["user"]
    users.create({"email": "ada@example.com", "firstName": "Ada", "lastName": "Lovelace", "createdAt": at(0)})
    users.create({"email": "alan@example.org", "firstName": "Alan", "lastName": "Turing", "createdAt": at(1)})
    return shop_store


def place_order(repos, user_id, product, quantity, hours, status="pending", number="A"):
    order = repos["order"].create(
        {
            "orderNumber": number,
            "status": status,
            "totalAmount": product["price"] * quantity,
            "userId": user_id,
            "createdAt": at(hours),
        }
    )
    repos["order"].store.create(
        "order_item",
        {
            "productId": product.id,
            "orderId": order.id,
            "productName": product["name"],
            "price": product["price"],
            "quantity": quantity,
            "subtotal": product["price"] * quantity,
            "createdAt": at(hours),
        },
    )
    return order


class TestCategoryRepository:
    """Tests for CategoryRepository."""

    def test_created_at_is_stamped(self, shop, repos):
        assert repos["category"].get("1")["createdAt"] is not None

    def test_root_categories_by_position(self, shop, repos):
        roots = repos["category"].find_root_categories()
        assert [c["name"] for c in roots] == ["Lighting", "Furniture"]

    def test_child_categories(self, shop, repos):
        assert [c["name"] for c in repos["category"].find_child_categories("1")] == ["Desks"]

    def test_categories_with_products(self, shop, repos):
        result = repos["category"].find_categories_with_products()
        assert [c["name"] for c in result] == ["Lighting", "Desks"]
        assert [p["name"] for p in result[1]["products"]] == ["Oak Desk", "Pine Desk"]

    def test_categories_with_min_products(self, shop, repos):
        assert repos["category"].find_categories_with_min_products(2) != []
        assert repos["category"].find_categories_with_min_products(3) == []

    def test_category_tree(self, shop, repos):
        tree = repos["category"].build_category_tree()
        furniture = next(n for n in tree if n["category"]["name"] == "Furniture")
        assert len(tree) == 2
        assert [c["category"]["name"] for c in furniture["children"]] == ["Desks"]

    def test_path_to_root(self, shop, repos):
        path = repos["category"].get_category_path_to_root("3")
        assert [c["name"] for c in path] == ["Furniture", "Desks"]

    def test_path_to_root_stops_on_cycle(self, shop_store, repos):
        categories = repos["category"]
        categories.create({"name": "A", "parentId": "2"}, record_id="1")
        categories.create({"name": "B", "parentId": "1"}, record_id="2")
        assert len(categories.get_category_path_to_root("1", max_depth=5)) == 5

    def test_search_by_name(self, shop, repos):
        assert [c["name"] for c in repos["category"].search_by_name("lightin")] == ["Lighting"]

    def test_statistics(self, shop, repos):
        stats = repos["category"].get_category_statistics()
        assert stats == {"total_count": 3, "active_count": 3, "root_count": 2, "avg_depth": 1.0}


class TestProductRepository:
    """Tests for ProductRepository."""

    def test_price_range(self, shop, repos):
        result = repos["product"].find_by_price_range(50.0, 200.0)
        assert [p["name"] for p in result] == ["Floor Lamp", "Pine Desk"]

    def test_low_stock(self, shop, repos):
        result = repos["product"].find_low_stock_products(threshold=10)
        assert [p["name"] for p in result] == ["Oak Desk", "Floor Lamp"]

    def test_by_category_without_tags(self, shop, repos):
        result = repos["product"].find_by_category_with_tags("2")
        assert [p["name"] for p in result] == ["Floor Lamp"]

    def test_by_category_with_tags(self, shop, shop_store, repos):
        sale = shop_store.create("tag", {"name": "sale", "createdAt": T0})
        new = shop_store.create("tag", {"name": "new", "createdAt": T0})
        repos["product"].add_tag("1", sale.id)
        repos["product"].add_tag("2", new.id)

        result = repos["product"].find_by_category_with_tags("3", [sale.id])

        assert [p["name"] for p in result] == ["Oak Desk"]
        assert [t["name"] for t in result[0]["tags"]] == ["sale"]

    def test_add_and_remove_tag_maintain_counter(self, shop, shop_store, repos):
        tag = shop_store.create("tag", {"name": "sale", "createdAt": T0})
        repos["product"].add_tag("1", tag.id)
        repos["product"].add_tag("3", tag.id)
        assert shop_store.get_by_id("tag", tag.id)["counter"] == 2

        assert repos["product"].remove_tag("1", tag.id) is True
        assert repos["product"].remove_tag("1", tag.id) is False
        assert shop_store.get_by_id("tag", tag.id)["counter"] == 1

    def test_popular_products(self, shop, repos):
        oak = repos["product"].get("1")
        lamp = repos["product"].get("3")
        place_order(repos, "1", oak, 1, 1, number="A1")
        place_order(repos, "1", lamp, 1, 2, number="A2")
        place_order(repos, "2", lamp, 2, 3, number="A3")

        popular = repos["product"].find_popular_products()
        assert [p["name"] for p in popular] == ["Floor Lamp", "Oak Desk"]

    def test_search_products_skips_inactive(self, shop, repos):
        result = repos["product"].search_products("lamp")
        assert [p["name"] for p in result] == ["Floor Lamp"]

    def test_products_with_reviews(self, shop, repos):
        reviews = repos["review"]
        reviews.create({"productId": "1", "userId": "1", "rating": 5, "content": "Great"})
        reviews.create({"productId": "3", "userId": "1", "rating": 2, "content": "Dim"})

        result = repos["product"].find_products_with_reviews(min_rating=4)
        assert [p["name"] for p in result] == ["Oak Desk"]

    def test_statistics(self, shop, repos):
        stats = repos["product"].get_product_statistics()
        assert stats["total_count"] == 4
        assert stats["active_count"] == 3
        assert stats["out_of_stock_count"] == 1
        assert stats["avg_price"] == pytest.approx((250 + 150 + 60 + 35) / 4)


class TestOrderRepository:
    """Tests for OrderRepository."""

    @pytest.fixture
    def orders(self, shop, repos):
        oak = repos["product"].get("1")
        lamp = repos["product"].get("3")
        place_order(repos, "1", oak, 1, 1, status="completed", number="A1")
        place_order(repos, "1", lamp, 2, 2, number="A2")
        place_order(repos, "2", lamp, 1, 3, status="cancelled", number="A3")
        return repos["order"]

    def test_status_defaults_to_pending(self, shop, repos):
        order = repos["order"].create(
            {"orderNumber": "X", "totalAmount": 1.0, "userId": "1", "createdAt": T0}
        )
        assert order["status"] == "pending"

    def test_invalid_status_rejected(self, shop, repos):
        with pytest.raises(ValidationError, match="Invalid order status"):
            repos["order"].create(
                {"orderNumber": "X", "status": "lost", "totalAmount": 1.0, "userId": "1"}
            )

    def test_find_by_status(self, orders):
        assert [o["orderNumber"] for o in orders.find_by_status("pending")] == ["A2"]

    def test_find_by_date_range_newest_first(self, orders):
        result = orders.find_by_date_range(at(1), at(2))
        assert [o["orderNumber"] for o in result] == ["A2", "A1"]

    def test_find_by_user(self, orders):
        assert [o["orderNumber"] for o in orders.find_by_user("1")] == ["A2", "A1"]

    def test_orders_with_items_by_user(self, orders):
        result = orders.find_orders_with_items_by_user("1")
        assert [len(o["items"]) for o in result] == [1, 1]

    def test_orders_containing_product(self, orders):
        result = orders.find_orders_containing_product("3")
        assert sorted(o["orderNumber"] for o in result) == ["A2", "A3"]
        assert all(item["productId"] == "3" for o in result for item in o["items"])

    def test_total_amount_range(self, orders):
        result = orders.find_by_total_amount_range(100.0, 300.0)
        assert [o["orderNumber"] for o in result] == ["A1", "A2"]

    def test_statistics_exclude_cancelled_revenue(self, orders):
        stats = orders.get_order_statistics()
        assert stats["total_count"] == 3
        assert stats["pending_count"] == 1
        assert stats["completed_count"] == 1
        assert stats["cancelled_count"] == 1
        assert stats["total_revenue"] == pytest.approx(370.0)
        assert stats["average_order_value"] == pytest.approx(185.0)


class TestReviewRepository:
    """Tests for ReviewRepository."""

    @pytest.fixture
    def reviews(self, shop, repos):
        reviews = repos["review"]
        rows = [
            ("1", "1", 5, True, 1),
            ("1", "2", 3, True, 2),
            ("1", "2", 1, False, 3),
            ("3", "1", 4, True, 4),
        ]
        for product_id, user_id, rating, approved, hours in rows:
            reviews.create(
                {
                    "productId": product_id,
                    "userId": user_id,
                    "rating": rating,
                    "content": f"{rating} stars",
                    "isApproved": approved,
                    "createdAt": at(hours),
                }
            )
        return reviews

    def test_find_by_product_only_approved(self, reviews):
        assert [r["rating"] for r in reviews.find_by_product("1")] == [3, 5]

    def test_top_rated(self, reviews):
        assert [r["rating"] for r in reviews.find_top_rated_reviews()] == [5, 4]

    def test_pending(self, reviews):
        assert [r["rating"] for r in reviews.find_pending_reviews()] == [1]

    def test_recent_reviews(self, reviews):
        assert reviews.find_recent_reviews(days=1) == []

    def test_with_product_and_user(self, reviews):
        result = reviews.find_reviews_with_product_and_user()
        assert len(result) == 3
        assert result[0]["product"][0]["name"] == "Floor Lamp"
        assert result[0]["user"][0]["firstName"] == "Ada"

    def test_average_and_counts(self, reviews):
        assert reviews.calculate_average_rating("1") == pytest.approx(4.0)
        assert reviews.calculate_average_rating("2") == 0.0
        assert reviews.count_reviews_by_rating("1") == {1: 0, 2: 0, 3: 1, 4: 0, 5: 1}

    def test_statistics(self, reviews):
        stats = reviews.get_review_statistics()
        assert stats["total_count"] == 4
        assert stats["approved_count"] == 3
        assert stats["pending_count"] == 1
        assert stats["average_rating"] == pytest.approx(13 / 4)
        assert stats["rating_distribution"][1] == 1


class TestUserRepository:
    """Tests for UserRepository."""

    def test_email_pattern(self, shop, repos):
        assert [u["firstName"] for u in repos["user"].find_by_email_pattern("example")] == [
            "Alan",
            "Ada",
        ]
        assert [u["firstName"] for u in repos["user"].find_by_email_pattern(".org")] == ["Alan"]

    def test_search_by_name_covers_both_names(self, shop, repos):
        assert [u["firstName"] for u in repos["user"].search_by_name("turin")] == ["Alan"]
        assert [u["firstName"] for u in repos["user"].search_by_name("ada")] == ["Ada"]

    def test_top_customers(self, shop, repos):
        lamp = repos["product"].get("3")
        place_order(repos, "2", lamp, 1, 1, number="A1")
        place_order(repos, "2", lamp, 1, 2, number="A2")
        place_order(repos, "1", lamp, 1, 3, number="A3")

        top = repos["user"].find_top_customers()
        assert [u["firstName"] for u in top] == ["Alan", "Ada"]
        assert len(top[0]["orders"]) == 2

    def test_statistics(self, shop, repos):
        place_order(repos, "1", repos["product"].get("3"), 1, 1)
        assert repos["user"].get_user_statistics() == {
            "total_count": 2,
            "active_count": 2,
            "with_orders_count": 1,
        }


class TestShopCascades:
    def test_deleting_user_removes_orders_items_and_reviews(self, shop, shop_store, repos):
        lamp = repos["product"].get("3")
        place_order(repos, "1", lamp, 1, 1)
        repos["review"].create({"productId": "3", "userId": "1", "rating": 4, "content": "ok"})

        deleted = cascade_delete(shop_store, SHOP_CASCADES, "user", "1")

        assert deleted == 4
        assert shop_store.find_all("order") == []
        assert shop_store.find_all("order_item") == []
        assert shop_store.find_all("review") == []
        assert repos["product"].find("3") is not None
