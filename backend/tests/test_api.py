"""
HTTP API tests through the Flask test client.
"""

from settlement.models import Sale

from conftest import operator_headers


def _checkout_body(product, quantity=1, **extra):
    body = {
        "items": [{"product_id": product.id, "quantity": quantity}],
        "payment_method": "CARD",
    }
    body.update(extra)
    return body


class TestOperatorIdentity:
    def test_missing_header(self, client, db_session, product):
        response = client.post("/api/sales/", json=_checkout_body(product))
        assert response.status_code == 401

    def test_unknown_operator(self, client, db_session, product):
        response = client.post("/api/sales/", json=_checkout_body(product), headers={"X-Operator-Id": "999"})
        assert response.status_code == 401

    def test_inactive_operator(self, client, db_session, cashier, product):
        cashier.is_active = False
        db_session.commit()

        response = client.post("/api/sales/", json=_checkout_body(product), headers=operator_headers(cashier))
        assert response.status_code == 401


class TestSalesApi:
    def test_checkout_and_fetch(self, client, db_session, cashier, product):
        response = client.post("/api/sales/", json=_checkout_body(product, 2), headers=operator_headers(cashier))

        assert response.status_code == 201
        data = response.get_json()
        assert data["sale"]["final_amount_cents"] == 2165
        assert data["sale"]["receipt_code"] == "S-000001"
        assert len(data["lines"]) == 1

        fetched = client.get(f"/api/sales/{data['sale']['id']}", headers=operator_headers(cashier))
        assert fetched.status_code == 200
        assert fetched.get_json()["sale"]["id"] == data["sale"]["id"]

    def test_error_shape(self, client, db_session, cashier, product):
        response = client.post("/api/sales/", json=_checkout_body(product, 500), headers=operator_headers(cashier))

        assert response.status_code == 409
        data = response.get_json()
        assert data["code"] == "INSUFFICIENT_STOCK"
        assert data["details"]["available"] == 20
        assert "error" in data

    def test_split_mismatch_is_400(self, client, db_session, cashier, product):
        body = _checkout_body(
            product,
            payment_method="MIXED",
            payment_splits=[
                {"payment_method": "CASH", "amount_cents": 100},
                {"payment_method": "CARD", "amount_cents": 100},
            ],
        )
        response = client.post("/api/sales/", json=body, headers=operator_headers(cashier))

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_PAYMENT_SPLIT"
        assert Sale.query.count() == 0

    def test_oversized_quantity_is_400(self, client, db_session, cashier, product):
        response = client.post("/api/sales/", json=_checkout_body(product, 10**20), headers=operator_headers(cashier))

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert Sale.query.count() == 0

    def test_non_string_notes_is_400(self, client, db_session, cashier, product):
        body = _checkout_body(product, notes={"a": 1})
        response = client.post("/api/sales/", json=body, headers=operator_headers(cashier))

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert Sale.query.count() == 0

    def test_return_with_non_string_notes_is_400(self, client, db_session, cashier, product):
        sale = client.post("/api/sales/", json=_checkout_body(product), headers=operator_headers(cashier)).get_json()

        response = client.post(
            f"/api/sales/{sale['sale']['id']}/returns",
            json={
                "items": [{"line_id": sale["lines"][0]["id"], "quantity": 1, "condition": "NEW"}],
                "reason": "Wrong size",
                "refund_method": "CASH",
                "notes": ["not", "text"],
            },
            headers=operator_headers(cashier),
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert Sale.query.count() == 1

    def test_missing_sale_is_404(self, client, db_session, cashier):
        response = client.get("/api/sales/4040", headers=operator_headers(cashier))
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_return_and_history(self, client, db_session, cashier, product):
        sale = client.post("/api/sales/", json=_checkout_body(product, 2), headers=operator_headers(cashier)).get_json()
        line_id = sale["lines"][0]["id"]
        sale_id = sale["sale"]["id"]

        response = client.post(
            f"/api/sales/{sale_id}/returns",
            json={
                "items": [{"line_id": line_id, "quantity": 1, "condition": "NEW"}],
                "reason": "Wrong size",
                "refund_method": "CASH",
            },
            headers=operator_headers(cashier),
        )
        assert response.status_code == 201
        assert response.get_json()["refund_amount_cents"] == 1000

        too_many = client.post(
            f"/api/sales/{sale_id}/returns",
            json={
                "items": [{"line_id": line_id, "quantity": 2, "condition": "NEW"}],
                "reason": "Wrong size",
                "refund_method": "CASH",
            },
            headers=operator_headers(cashier),
        )
        assert too_many.status_code == 409
        assert too_many.get_json()["code"] == "RETURN_QUANTITY_EXCEEDED"

        history = client.get(f"/api/sales/{sale_id}/returns", headers=operator_headers(cashier)).get_json()
        assert history["total_returns"] == 1

    def test_void_twice(self, client, db_session, cashier, product):
        sale = client.post("/api/sales/", json=_checkout_body(product), headers=operator_headers(cashier)).get_json()
        url = f"/api/sales/{sale['sale']['id']}/void"

        first = client.post(url, json={"reason": "Duplicate"}, headers=operator_headers(cashier))
        second = client.post(url, json={"reason": "Duplicate"}, headers=operator_headers(cashier))

        assert first.status_code == 200
        assert first.get_json()["sale"]["status"] == "VOIDED"
        assert second.status_code == 409
        assert second.get_json()["code"] == "ALREADY_VOIDED"

    def test_void_other_operators_sale_forbidden(self, client, db_session, cashier, other_cashier, product):
        sale = client.post("/api/sales/", json=_checkout_body(product), headers=operator_headers(cashier)).get_json()

        response = client.post(
            f"/api/sales/{sale['sale']['id']}/void",
            json={"reason": "Not mine"},
            headers=operator_headers(other_cashier),
        )
        assert response.status_code == 403


class TestInventoryApi:
    def test_receive_and_movements(self, client, db_session, cashier, product):
        response = client.post(
            "/api/inventory/receive",
            json={"product_id": product.id, "quantity": 4, "reference": "PO-9"},
            headers=operator_headers(cashier),
        )
        assert response.status_code == 201

        listing = client.get(
            f"/api/inventory/products/{product.id}/movements",
            headers=operator_headers(cashier),
        ).get_json()
        assert listing["summary"]["stock_quantity"] == 24
        assert listing["summary"]["in_sync"] is True
        assert [m["quantity_delta"] for m in listing["movements"]] == [4, 20]

    def test_adjust_requires_elevated_role(self, client, db_session, cashier, manager, product):
        body = {"product_id": product.id, "quantity_delta": -1, "reason": "Broken"}

        assert client.post("/api/inventory/adjust", json=body, headers=operator_headers(cashier)).status_code == 403
        assert client.post("/api/inventory/adjust", json=body, headers=operator_headers(manager)).status_code == 201

    def test_reconcile_product(self, client, db_session, cashier, product):
        response = client.get(f"/api/inventory/products/{product.id}/reconcile", headers=operator_headers(cashier))

        assert response.status_code == 200
        assert response.get_json()["in_sync"] is True

    def test_bad_quantity(self, client, db_session, cashier, product):
        response = client.post(
            "/api/inventory/receive",
            json={"product_id": product.id, "quantity": "1e3"},
            headers=operator_headers(cashier),
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"


class TestLoyaltyApi:
    def test_tiers(self, client, db_session, cashier):
        response = client.get("/api/loyalty/tiers", headers=operator_headers(cashier))

        assert response.status_code == 200
        assert len(response.get_json()["tiers"]) == 4

    def test_tier_update_needs_manager(self, client, db_session, cashier, manager):
        body = {"minimum_points": 400, "points_multiplier_bps": 12500}

        denied = client.put("/api/loyalty/tiers/SILVER", json=body, headers=operator_headers(cashier))
        allowed = client.put("/api/loyalty/tiers/silver", json=body, headers=operator_headers(manager))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.get_json()["tier"]["minimum_points"] == 400

    def test_status_history_and_redeem(self, client, db_session, cashier, untaxed_product, customer):
        client.post(
            "/api/sales/",
            json=_checkout_body(untaxed_product, 2, customer_id=customer.id),
            headers=operator_headers(cashier),
        )

        status = client.get(f"/api/loyalty/customers/{customer.id}", headers=operator_headers(cashier)).get_json()
        assert status["points"]["current"] == 120

        redeemed = client.post(
            f"/api/loyalty/customers/{customer.id}/redeem",
            json={"points": 200, "reward_type": "DISCOUNT_FIXED", "reward_value_cents": 1000},
            headers=operator_headers(cashier),
        )
        assert redeemed.status_code == 409
        assert redeemed.get_json()["code"] == "INSUFFICIENT_POINTS"

        history = client.get(
            f"/api/loyalty/customers/{customer.id}/transactions",
            headers=operator_headers(cashier),
        ).get_json()
        assert [t["points"] for t in history["transactions"]] == [120]


class TestHealth:
    def test_health(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"
