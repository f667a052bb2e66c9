"""
Void tests.

A void is a one-way status transition that restores stock and reverses
every loyalty effect of the sale, or changes nothing at all.
"""

import pytest

from settlement.models import PointsTransaction, StockMovement
from settlement.services import audit_service, inventory_service, loyalty_service, return_service, sales_service
from settlement.services.errors import AlreadyVoided, NotFound, Unauthorized, ValidationError

from conftest import TEST_PASSWORD


def _sell(operator, product, quantity, **kwargs):
    kwargs.setdefault("payment_method", "CARD")
    return sales_service.checkout(
        operator_id=operator.id,
        items=[{"product_id": product.id, "quantity": quantity}],
        **kwargs,
    )


def _void(operator, sale, **kwargs):
    kwargs.setdefault("reason", "Rung up twice")
    return sales_service.void_sale(sale_id=sale.id, operator_id=operator.id, **kwargs)


class TestVoid:
    def test_void_restores_stock(self, db_session, cashier, product):
        sale = _sell(cashier, product, 5)
        assert product.stock_quantity == 15

        result = _void(cashier, sale)

        assert result["sale"].status == "VOIDED"
        assert result["sale"].payment_status == "VOIDED"
        assert result["sale"].voided_by_operator_id == cashier.id
        assert result["sale"].void_reason == "Rung up twice"
        assert result["sale"].voided_at is not None
        assert product.stock_quantity == 20

        movement = StockMovement.query.filter_by(movement_type="ADJUSTMENT").one()
        assert movement.quantity_delta == 5
        assert movement.reason == f"Voided sale #{sale.receipt_code}"
        assert inventory_service.reconcile_stock() == []
        actions = [entry.action for entry in audit_service.list_audit_events("sale", sale.id)]
        assert actions == ["CREATE_SALE", "VOID_SALE"]

    def test_void_without_restock(self, db_session, cashier, product):
        sale = _sell(cashier, product, 5)
        result = _void(cashier, sale, restore_stock=False)

        assert result["restocked"] == []
        assert product.stock_quantity == 15
        assert StockMovement.query.filter_by(movement_type="ADJUSTMENT").count() == 0

    def test_second_void_rejected_and_changes_nothing(self, db_session, cashier, product):
        sale = _sell(cashier, product, 2)
        _void(cashier, sale)

        with pytest.raises(AlreadyVoided):
            _void(cashier, sale, reason="Again")

        assert product.stock_quantity == 20
        assert StockMovement.query.filter_by(movement_type="ADJUSTMENT").count() == 1
        assert sale.void_reason == "Rung up twice"

    def test_unknown_sale(self, db_session, cashier):
        with pytest.raises(NotFound):
            sales_service.void_sale(sale_id=12345, operator_id=cashier.id, reason="x")

    def test_reason_required(self, db_session, cashier, product):
        sale = _sell(cashier, product, 1)
        with pytest.raises(ValidationError):
            _void(cashier, sale, reason="")

    def test_sale_with_returns_cannot_be_voided(self, db_session, cashier, product):
        sale = _sell(cashier, product, 2)
        return_service.process_return(
            original_sale_id=sale.id,
            items=[{"line_id": sale.lines[0].id, "quantity": 1, "condition": "NEW"}],
            reason="Too big",
            refund_method="CASH",
            operator_id=cashier.id,
        )

        with pytest.raises(ValidationError):
            _void(cashier, sale)
        assert sale.status == "ACTIVE"


class TestVoidAuthorization:
    def test_cashier_cannot_void_someone_elses_sale(self, db_session, cashier, other_cashier, product):
        sale = _sell(cashier, product, 1)

        with pytest.raises(Unauthorized):
            _void(other_cashier, sale)
        assert sale.status == "ACTIVE"

    def test_manager_can_void_any_sale(self, db_session, cashier, manager, product):
        sale = _sell(cashier, product, 1)
        result = _void(manager, sale)

        assert result["sale"].voided_by_operator_id == manager.id

    def test_password_required_when_configured(self, app, db_session, cashier, product):
        sale = _sell(cashier, product, 1)
        app.config["REQUIRE_PASSWORD_ON_VOID"] = True
        try:
            with pytest.raises(Unauthorized):
                _void(cashier, sale)
            with pytest.raises(Unauthorized):
                _void(cashier, sale, password="wrong")
            assert sale.status == "ACTIVE"

            result = _void(cashier, sale, password=TEST_PASSWORD)
        finally:
            app.config["REQUIRE_PASSWORD_ON_VOID"] = False

        assert result["sale"].status == "VOIDED"


class TestVoidLoyalty:
    def test_full_void_restores_points_and_lifetime(self, db_session, cashier, untaxed_product, customer):
        balance_before = customer.loyalty_points
        lifetime_before = loyalty_service.get_lifetime_earned(customer.id)

        sale = _sell(cashier, untaxed_product, 2, customer_id=customer.id)
        assert sale.points_earned == 120

        result = _void(cashier, sale)

        assert result["loyalty"]["points_reversed"] == 120
        assert customer.loyalty_points == balance_before
        assert loyalty_service.get_lifetime_earned(customer.id) == lifetime_before
        assert loyalty_service.get_ledger_balance(customer.id) == customer.loyalty_points

    def test_void_can_lower_tier(self, db_session, cashier, untaxed_product, customer):
        # 6000.00 -> 600 points -> SILVER
        sale = _sell(cashier, untaxed_product, 10, customer_id=customer.id)
        assert customer.loyalty_tier == "SILVER"

        result = _void(cashier, sale)

        assert result["loyalty"]["previous_tier"] == "SILVER"
        assert customer.loyalty_tier == "BRONZE"
        assert customer.loyalty_points == 0

    def test_redeemed_points_restored(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 1, customer_id=customer.id)
        assert customer.loyalty_points == 60

        sale = _sell(
            cashier,
            untaxed_product,
            1,
            customer_id=customer.id,
            points_redeemed=40,
            loyalty_discount_cents=400,
        )
        # 60 - 40 + floor(596.00 / 10.00)
        assert customer.loyalty_points == 79

        result = _void(cashier, sale)

        assert result["loyalty"]["points_restored"] == 40
        assert customer.loyalty_points == 60
        refunds = PointsTransaction.query.filter(
            PointsTransaction.sale_id == sale.id,
            PointsTransaction.points == 40,
        ).all()
        assert len(refunds) == 1
