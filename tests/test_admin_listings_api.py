import json
from decimal import Decimal
from unittest.mock import patch
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.exc import OperationalError

from tests.base import ApiTestBase

from marketplace.models.category import Category
from marketplace.models.order import Order
from marketplace.models.setting import Setting
from marketplace.models.user import User


class AdminListingsApiTests(ApiTestBase):
    def test_list_products_with_pagination_and_sort(self):
        self.add_products(*[{"title": f"Item {idx:02d}", "price": f"{idx + 1}.00"} for idx in range(25)])
        response = self.client.get("/api/admin/listings/products", params={"page": 2, "perPage": 10, "sort": "price.desc"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 25)
        self.assertEqual(body["pageCount"], 3)
        self.assertEqual([row["price"] for row in body["rows"]], [float(value) for value in range(15, 5, -1)])

    def test_repeated_query_params_become_a_set(self):
        self.add_products(
            {"title": "A", "category": "Icons"},
            {"title": "B", "category": "Fonts"},
            {"title": "C", "category": "UI Kits"},
        )
        response = self.client.get("/api/admin/listings/products?category=Icons&category=Fonts&sort=title.asc")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["title"] for row in response.json()["rows"]], ["A", "B"])

    def test_advanced_filters_in_query_string(self):
        self.add_products({"title": "Cheap", "price": "5.00"}, {"title": "Pricey", "price": "80.00"})
        response = self.client.get(
            "/api/admin/listings/products",
            params={
                "filterFlag": "advancedFilters",
                "filters": json.dumps([{"id": "price", "value": "50", "operator": "gte"}]),
                "title": "Cheap",
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["title"] for row in response.json()["rows"]], ["Pricey"])

    def test_post_query_accepts_json_body(self):
        self.add_rows(
            User,
            {"email": "ann@example.com", "name": "Ann", "role": "admin"},
            {"email": "bob@example.com", "name": "Bob"},
        )
        response = self.client.post(
            "/api/admin/listings/users/query",
            json={
                "filterFlag": "advancedFilters",
                "filters": [{"id": "role", "value": "admin", "operator": "eq"}],
                "sort": [{"field": "email", "direction": "asc"}],
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 1)
        self.assertEqual(body["rows"][0]["email"], "ann@example.com")

    def test_bad_input_is_normalized_not_rejected(self):
        self.add_rows(Setting, {"key": "site.name", "value": {"text": "Shop"}, "category": "general"})
        response = self.client.get(
            "/api/admin/listings/settings",
            params={"page": "x", "perPage": "-5", "sort": "nope.sideways", "filters": "{bad", "joinOperator": "xor"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total"], 1)

    def test_unknown_kind_is_404(self):
        response = self.client.get("/api/admin/listings/invoices")
        self.assertEqual(response.status_code, 404)
        self.assertIn("invoices", response.json()["detail"])

    def test_store_failure_is_503_with_empty_page(self):
        with patch("sqlalchemy.orm.Session.execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
            response = self.client.get("/api/admin/listings/products")
        self.assertEqual(response.status_code, 503)
        body = response.json()
        self.assertEqual(body["rows"], [])
        self.assertEqual(body["total"], 0)
        self.assertEqual(body["pageCount"], 0)

    def test_repeated_filters_keys_each_carry_a_list(self):
        self.add_products(
            {"title": "Cheap kit", "price": "5.00"},
            {"title": "Pricey kit", "price": "80.00"},
            {"title": "Pricey font", "price": "90.00"},
        )
        query = urlencode(
            [
                ("filterFlag", "advancedFilters"),
                ("filters", json.dumps([{"id": "price", "value": "50", "operator": "gte"}])),
                ("filters", json.dumps([{"id": "title", "value": "kit", "operator": "ilike"}])),
            ]
        )
        response = self.client.get(f"/api/admin/listings/products?{query}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["title"] for row in response.json()["rows"]], ["Pricey kit"])

    def test_out_of_range_values_are_not_server_errors(self):
        self.add_products({"title": "Kit"})
        checks = [
            ("/api/admin/listings/analytics_events", {"dateTo": "9999-12-31"}, 0),
            ("/api/admin/listings/analytics_events", {"dateFrom": "99999999999999999999"}, 0),
            ("/api/admin/listings/products", {"page": "99999999999999999999"}, 1),
            (
                "/api/admin/listings/products",
                {
                    "filterFlag": "advancedFilters",
                    "filters": json.dumps([{"id": "createdAt", "value": 1e20, "operator": "gt"}]),
                },
                1,
            ),
            (
                "/api/admin/listings/products",
                {
                    "filterFlag": "advancedFilters",
                    "filters": json.dumps([{"id": "downloadCount", "value": "1" + "0" * 30, "operator": "lt"}]),
                },
                1,
            ),
        ]
        for path, params, total in checks:
            response = self.client.get(path, params=params)
            self.assertEqual(response.status_code, 200, params)
            self.assertEqual(response.json()["total"], total, params)

    def test_orders_rows_carry_the_customer(self):
        (user_id,) = self.add_rows(User, {"email": "ann@example.com", "name": "Ann"})
        (order_id,) = self.add_rows(
            Order, {"order_number": "ORD-1", "user_id": UUID(user_id), "total_amount": Decimal("12.00")}
        )
        body = self.client.get("/api/admin/listings/orders").json()
        self.assertEqual(body["rows"][0]["userName"], "Ann")
        self.assertEqual(body["rows"][0]["userEmail"], "ann@example.com")

        row = self.client.get(f"/api/admin/listings/orders/{order_id}").json()
        self.assertEqual(row["userEmail"], "ann@example.com")

    def test_get_single_row(self):
        (category_id,) = self.add_rows(Category, {"name": "Icons", "slug": "icons"})
        response = self.client.get(f"/api/admin/listings/categories/{category_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["slug"], "icons")

        missing = self.client.get("/api/admin/listings/categories/not-a-uuid")
        self.assertEqual(missing.status_code, 404)

    def test_request_id_is_echoed(self):
        response = self.client.get("/api/admin/listings/products", headers={"X-Request-ID": "list-check-1"})
        self.assertEqual(response.headers.get("x-request-id"), "list-check-1")
        generated = self.client.get("/health", headers={"X-Request-ID": "bad id"})
        self.assertRegex(generated.headers.get("x-request-id"), r"^[0-9a-f]{32}$")


class AdminMetaApiTests(ApiTestBase):
    def test_entities_describe_fields_and_operators(self):
        response = self.client.get("/api/admin/meta/entities")
        self.assertEqual(response.status_code, 200)
        entities = {item["kind"]: item for item in response.json()["entities"]}
        self.assertEqual(
            set(entities),
            {"products", "categories", "orders", "users", "settings", "analytics_events"},
        )
        fields = {item["id"]: item for item in entities["products"]["fields"]}
        self.assertEqual(fields["price"]["type"], "number")
        self.assertIn("gte", [op["value"] for op in fields["price"]["operators"]])
        self.assertEqual(entities["products"]["defaultSort"], ["createdAt.desc"])
        self.assertEqual(entities["settings"]["cacheTtlSeconds"], 300)
        self.assertEqual(entities["analytics_events"]["cacheTtlSeconds"], 60)
        self.assertEqual(entities["orders"]["cacheTtlSeconds"], 3600)
        self.assertEqual(
            entities["orders"]["relatedFields"],
            [{"id": "userName", "label": "User name", "type": "text"}, {"id": "userEmail", "label": "User email", "type": "text"}],
        )
        self.assertEqual(entities["categories"]["relatedFields"][0]["id"], "productCount")
        self.assertEqual(entities["orders"]["facetFields"], ["status", "paymentStatus"])

    def test_entities_search_terms(self):
        response = self.client.get("/api/admin/meta/entities", params={"q": "paymentStatus"})
        self.assertEqual([item["kind"] for item in response.json()["entities"]], ["orders"])

        either = self.client.get("/api/admin/meta/entities", params={"q": "orders users", "operator": "or"})
        self.assertEqual({item["kind"] for item in either.json()["entities"]}, {"orders", "users"})


class AdminFacetsApiTests(ApiTestBase):
    def test_order_counts_list_every_status(self):
        (user_id,) = self.add_rows(User, {"email": "buyer@example.com", "name": "Buyer"})
        buyer = UUID(user_id)
        self.add_rows(
            Order,
            {"order_number": "ORD-1", "user_id": buyer, "status": "pending", "total_amount": Decimal("10.00")},
            {"order_number": "ORD-2", "user_id": buyer, "status": "pending", "total_amount": Decimal("20.00")},
            {
                "order_number": "ORD-3",
                "user_id": buyer,
                "status": "completed",
                "payment_status": "paid",
                "total_amount": Decimal("30.00"),
            },
        )
        response = self.client.get("/api/admin/facets/orders")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["kind"], "orders")
        self.assertEqual(
            body["counts"]["status"],
            {"pending": 2, "processing": 0, "completed": 1, "cancelled": 0, "refunded": 0},
        )
        self.assertEqual(body["counts"]["paymentStatus"], {"pending": 2, "paid": 1, "failed": 0, "refunded": 0})

    def test_counts_follow_writes(self):
        self.add_rows(User, {"email": "a@example.com", "name": "A", "role": "admin"})
        self.assertEqual(self.client.get("/api/admin/facets/users").json()["counts"]["role"], {"user": 0, "admin": 1})

        self.add_rows(User, {"email": "b@example.com", "name": "B"}, {"email": "c@example.com", "name": "C"})
        self.assertEqual(self.client.get("/api/admin/facets/users").json()["counts"]["role"], {"user": 2, "admin": 1})

    def test_boolean_counts_include_both_values(self):
        self.add_rows(Category, {"name": "Icons", "slug": "icons"})
        body = self.client.get("/api/admin/facets/categories").json()
        self.assertEqual(body["counts"]["isActive"], {"true": 1, "false": 0})

    def test_unknown_kind_is_404(self):
        self.assertEqual(self.client.get("/api/admin/facets/invoices").status_code, 404)

    def test_store_failure_is_503(self):
        with patch("sqlalchemy.orm.Session.execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
            response = self.client.get("/api/admin/facets/orders")
        self.assertEqual(response.status_code, 503)


class AdminProductsApiTests(ApiTestBase):
    def _create(self, **overrides):
        payload = {"title": "Icon Pack", "price": "12.50", "category": "Icons", "tags": ["svg"]}
        payload.update(overrides)
        response = self.client.post("/api/admin/products", json=payload)
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def _total(self, **params):
        return self.client.get("/api/admin/listings/products", params=params).json()["total"]

    def test_create_shows_up_in_warm_listing(self):
        self.assertEqual(self._total(), 0)
        self._create()
        self.assertEqual(self._total(), 1)

    def test_update_and_delete_refresh_listing(self):
        product_id = self._create()
        self.assertEqual(self._total(title="bundle"), 0)

        response = self.client.patch(f"/api/admin/products/{product_id}", json={"title": "Icon Bundle"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._total(title="bundle"), 1)

        response = self.client.delete(f"/api/admin/products/{product_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._total(), 0)

    def test_missing_product_is_404(self):
        response = self.client.patch("/api/admin/products/7c9e6679-7425-40de-944b-e07fc1f90ae7", json={"title": "X"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.delete("/api/admin/products/nope").status_code, 404)

    def test_invalid_payload_is_422(self):
        response = self.client.post("/api/admin/products", json={"title": "", "price": "-1", "category": "Icons"})
        self.assertEqual(response.status_code, 422)

    def test_bulk_update_and_delete(self):
        ids = [self._create(title=f"P{idx}") for idx in range(3)]
        self.assertEqual(self._total(isActive="false"), 0)

        response = self.client.post("/api/admin/products/bulk-update", json={"ids": ids[:2], "is_active": False})
        self.assertEqual(response.json(), {"updated": 2})
        self.assertEqual(self._total(isActive="false"), 2)

        response = self.client.post("/api/admin/products/bulk-delete", json={"ids": ids})
        self.assertEqual(response.json(), {"deleted": 3})
        self.assertEqual(self._total(), 0)

    def test_facets(self):
        self._create(category="Icons", price="10.00")
        self._create(category="Icons", price="30.00")
        self._create(category="Fonts", price="20.00")
        self._create(category="Fonts", price="90.00", is_active=False)

        response = self.client.get("/api/admin/products/facets")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], {"active": 3, "inactive": 1})
        self.assertEqual(body["categories"], {"Icons": 2, "Fonts": 1})
        self.assertEqual(body["priceRange"], {"min": 10.0, "max": 30.0})

        self._create(category="Fonts", price="5.00")
        refreshed = self.client.get("/api/admin/products/facets").json()
        self.assertEqual(refreshed["categories"], {"Icons": 2, "Fonts": 2})
        self.assertEqual(refreshed["priceRange"]["min"], 5.0)


class AdminCategoriesApiTests(ApiTestBase):
    def test_create_update_delete(self):
        response = self.client.post("/api/admin/categories", json={"name": "Icons", "slug": "icons"})
        self.assertEqual(response.status_code, 201)
        category_id = response.json()["id"]
        listing = self.client.get("/api/admin/listings/categories", params={"name": "ico"}).json()
        self.assertEqual(listing["total"], 1)

        response = self.client.patch(f"/api/admin/categories/{category_id}", json={"is_active": False})
        self.assertEqual(response.status_code, 200)
        listing = self.client.get("/api/admin/listings/categories", params={"isActive": "false"}).json()
        self.assertEqual(listing["total"], 1)

        response = self.client.delete(f"/api/admin/categories/{category_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/admin/listings/categories").json()["total"], 0)

    def test_duplicate_slug_is_409(self):
        self.client.post("/api/admin/categories", json={"name": "Icons", "slug": "icons"})
        response = self.client.post("/api/admin/categories", json={"name": "Other", "slug": "icons"})
        self.assertEqual(response.status_code, 409)

    def test_bad_slug_is_422(self):
        response = self.client.post("/api/admin/categories", json={"name": "Icons", "slug": "Not A Slug"})
        self.assertEqual(response.status_code, 422)
