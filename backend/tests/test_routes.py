"""
HTTP route tests for the stock-control API.

Verifies:
- Checkout flow over HTTP: reserve -> commit, reserve -> release
- Business errors map to 409/404, bad input to 400
- Counters cannot be written through the variant routes
- Operator adjustments and read endpoints
"""

import pytest


# =============================================================================
# CHECKOUT FLOW
# =============================================================================


class TestCheckoutFlow:

    def test_reserve_then_commit(self, client, make_variant, stock_of):
        make_variant("VAR-1", on_hand=10)

        resp = client.post("/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 2})
        assert resp.status_code == 201
        body = resp.get_json()
        reservation_id = body["reservation"]["id"]
        assert body["reservation"]["status"] == "active"
        assert body["stock"]["available"] == 8
        assert body["reservation"]["expires_at"].endswith("Z")

        resp = client.post(
            "/api/inventory/commit",
            json={"reservation_id": reservation_id, "order_reference": "ORD-100"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["reservation"]["status"] == "committed"
        assert stock_of("VAR-1") == (8, 0)

        resp = client.get(f"/api/inventory/reservations/{reservation_id}")
        assert resp.get_json()["reservation"]["order_reference"] == "ORD-100"

    def test_release_twice_is_ok(self, client, make_variant, stock_of):
        make_variant("VAR-1", on_hand=3)
        reservation_id = client.post(
            "/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 3}
        ).get_json()["reservation"]["id"]

        for _ in range(2):
            resp = client.post("/api/inventory/release", json={"reservation_id": reservation_id})
            assert resp.status_code == 200
            assert resp.get_json()["reservation"]["status"] == "released"

        assert stock_of("VAR-1") == (3, 0)

    def test_untracked_reserve_has_no_stock_block(self, client, make_variant):
        make_variant("FREE-1", on_hand=0, track_inventory=False)

        resp = client.post("/api/inventory/reserve", json={"variant_id": "FREE-1", "quantity": 5})

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["reservation"]["tracked"] is False
        assert "stock" not in body


# =============================================================================
# ERROR MAPPING
# =============================================================================


class TestErrorMapping:

    def test_oversell_is_409(self, client, make_variant):
        make_variant("VAR-1", on_hand=1)

        resp = client.post("/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 2})

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "insufficient_stock"
        assert body["details"]["available"] == 1

    def test_commit_released_reservation_is_409(self, client, make_variant):
        make_variant("VAR-1", on_hand=2)
        reservation_id = client.post(
            "/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 1}
        ).get_json()["reservation"]["id"]
        client.post("/api/inventory/release", json={"reservation_id": reservation_id})

        resp = client.post(
            "/api/inventory/commit",
            json={"reservation_id": reservation_id, "order_reference": "ORD-1"},
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "invalid_reservation_state"
        assert body["details"]["status"] == "released"

    def test_adjust_below_reserved_is_409(self, client, make_variant):
        make_variant("VAR-1", on_hand=2)
        client.post("/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 2})

        resp = client.post(
            "/api/inventory/adjust",
            json={"variant_id": "VAR-1", "quantity_change": -1, "reason": "damage", "actor_id": "clerk"},
        )

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "adjustment_below_reserved"

    @pytest.mark.parametrize(
        "method,path,payload",
        [
            ("GET", "/api/inventory/available/NOPE", None),
            ("GET", "/api/inventory/history/NOPE", None),
            ("GET", "/api/inventory/reservations/999", None),
            ("GET", "/api/variants/NOPE", None),
            ("POST", "/api/inventory/reserve", {"variant_id": "NOPE", "quantity": 1}),
            ("POST", "/api/inventory/commit", {"reservation_id": 999, "order_reference": "ORD-1"}),
        ],
    )
    def test_unknown_ids_are_404(self, client, db_session, method, path, payload):
        resp = getattr(client, method.lower())(path, json=payload)
        assert resp.status_code == 404, f"{method} {path} returned {resp.status_code}"

    @pytest.mark.parametrize(
        "path,payload",
        [
            ("/api/inventory/reserve", {"variant_id": "VAR-1"}),
            ("/api/inventory/reserve", {"variant_id": "VAR-1", "quantity": 0}),
            ("/api/inventory/reserve", {"variant_id": "VAR-1", "quantity": 1.5}),
            ("/api/inventory/reserve", {"variant_id": "VAR-1", "quantity": 1, "price": 9}),
            ("/api/inventory/commit", {"reservation_id": 1}),
            ("/api/inventory/adjust", {"variant_id": "VAR-1", "quantity_change": 3, "reason": "restock"}),
            (
                "/api/inventory/adjust",
                {"variant_id": "VAR-1", "quantity_change": 3, "reason": "theft", "actor_id": "clerk"},
            ),
        ],
    )
    def test_bad_input_is_400(self, client, make_variant, path, payload):
        make_variant("VAR-1", on_hand=5)

        resp = client.post(path, json=payload)

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_non_json_body_is_400(self, client, db_session):
        resp = client.post("/api/inventory/reserve", data="quantity=1", content_type="text/plain")
        assert resp.status_code == 400


# =============================================================================
# OPERATOR ROUTES
# =============================================================================


class TestOperatorRoutes:

    def test_adjust_and_read_back(self, client, make_variant):
        make_variant("VAR-1", on_hand=5, product_id="P-1")

        resp = client.post(
            "/api/inventory/adjust",
            json={
                "variant_id": "VAR-1",
                "quantity_change": 4,
                "reason": "return",
                "actor_id": "clerk@shop",
                "notes": "customer return",
            },
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["entry"]["actor_id"] == "clerk@shop"
        assert body["stock"]["on_hand"] == 9

        resp = client.get("/api/inventory/adjustments", query_string={"reason": "return"})
        rows = resp.get_json()["adjustments"]
        assert [r["quantity_delta"] for r in rows] == [4]

        resp = client.get("/api/inventory/history/VAR-1", query_string={"limit": 1})
        assert resp.get_json()["history"][0]["reason"] == "return"

    def test_stock_levels_threshold(self, client, make_variant):
        make_variant("VAR-A", on_hand=20)
        make_variant("VAR-B", on_hand=3)

        resp = client.get("/api/inventory/stock-levels", query_string={"threshold": 5, "low_only": "true"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert [r["variant_id"] for r in body["stock_levels"]] == ["VAR-B"]
        assert body["stock_levels"][0]["is_low_stock"] is True

    def test_stock_levels_bad_threshold(self, client, db_session):
        resp = client.get("/api/inventory/stock-levels", query_string={"threshold": "lots"})
        assert resp.status_code == 400

    def test_adjustments_bad_date(self, client, db_session):
        resp = client.get("/api/inventory/adjustments", query_string={"start_date": "yesterday"})
        assert resp.status_code == 400

    def test_entries_by_order(self, client, make_variant):
        make_variant("VAR-1", on_hand=5)
        reservation_id = client.post(
            "/api/inventory/reserve", json={"variant_id": "VAR-1", "quantity": 2}
        ).get_json()["reservation"]["id"]
        client.post("/api/inventory/commit", json={"reservation_id": reservation_id, "order_reference": "ORD-9"})

        resp = client.get("/api/inventory/order/ORD-9")

        assert resp.get_json()["count"] == 1
        assert resp.get_json()["records"][0]["entry_type"] == "commit"


# =============================================================================
# VARIANTS
# =============================================================================


class TestVariantRoutes:

    def test_register_and_fetch(self, client, db_session):
        resp = client.post(
            "/api/variants",
            json={"variant_id": "VAR-9", "sku": "SAREE-RED-M", "name": "Red Saree / M"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["variant"]["on_hand"] == 0

        resp = client.get("/api/variants/VAR-9")
        assert resp.get_json()["variant"]["sku"] == "SAREE-RED-M"

    def test_register_duplicate_is_400(self, client, make_variant):
        make_variant("VAR-1", on_hand=0)
        resp = client.post("/api/variants", json={"variant_id": "VAR-1"})
        assert resp.status_code == 400

    def test_register_cannot_seed_counters(self, client, db_session):
        resp = client.post("/api/variants", json={"variant_id": "VAR-9", "on_hand": 50})
        assert resp.status_code == 400

    def test_patch_unexpected_error_is_500(self, client, make_variant, monkeypatch):
        from stockledger.services import variant_service

        make_variant("VAR-1", on_hand=1)

        def boom(variant_id, changes):
            raise RuntimeError("boom")

        monkeypatch.setattr(variant_service, "update_variant", boom)
        resp = client.patch("/api/variants/VAR-1", json={"name": "x"})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}

    def test_patch_rejects_bad_tracking_flag(self, client, make_variant):
        make_variant("VAR-1", on_hand=1)
        resp = client.patch("/api/variants/VAR-1", json={"track_inventory": "maybe"})
        assert resp.status_code == 400

    def test_patch_rejects_counters(self, client, make_variant, stock_of):
        make_variant("VAR-1", on_hand=5)

        resp = client.patch("/api/variants/VAR-1", json={"on_hand": 500})

        assert resp.status_code == 400
        assert stock_of("VAR-1") == (5, 0)

    def test_patch_updates_description(self, client, make_variant):
        make_variant("VAR-1", on_hand=5)

        resp = client.patch("/api/variants/VAR-1", json={"name": "Blue Saree / L", "track_inventory": "false"})

        assert resp.status_code == 200
        variant = resp.get_json()["variant"]
        assert variant["name"] == "Blue Saree / L"
        assert variant["track_inventory"] is False


# =============================================================================
# HEALTH
# =============================================================================


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["sweeper"]["running"] is False
