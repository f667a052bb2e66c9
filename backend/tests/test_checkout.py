"""
Checkout tests.

Covers totals and tax, stock ledger writes, payment validation and
all-or-nothing behavior when any part of a checkout fails.
"""

import pytest

from settlement.extensions import db
from settlement.models import PaymentSplit, PointsTransaction, Sale, StockMovement
from settlement.services import audit_service, inventory_service, sales_service
from settlement.services.errors import (
    InsufficientPoints,
    InsufficientStock,
    InvalidPaymentSplit,
    NotFound,
    ValidationError,
)

from conftest import make_product


def _checkout(operator, *items, **kwargs):
    kwargs.setdefault("payment_method", "CARD")
    return sales_service.checkout(operator_id=operator.id, items=list(items), **kwargs)


class TestCheckoutTotals:
    def test_line_tax_and_final_amount(self, db_session, cashier, product):
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 2})

        assert sale.subtotal_cents == 2000
        # 2000 * 8.25% = 165
        assert sale.tax_cents == 165
        assert sale.final_amount_cents == 2165
        assert sale.receipt_code == "S-000001"
        assert sale.status == "ACTIVE"
        assert sale.payment_status == "COMPLETED"

        [line] = sale.lines
        assert line.quantity == 2
        assert line.unit_price_cents == 1000
        assert line.tax_cents == 165

    def test_final_amount_identity_with_discounts(self, db_session, cashier, product):
        sale = _checkout(
            cashier,
            {"product_id": product.id, "quantity": 3, "discount_cents": 100},
            discount_cents=250,
            loyalty_discount_cents=50,
            discount_reason="Damaged box",
        )

        assert sale.subtotal_cents == 2900
        assert sale.final_amount_cents == (
            sale.subtotal_cents + sale.tax_cents - sale.discount_cents - sale.loyalty_discount_cents
        )
        assert sale.discount_reason == "Damaged box"

    def test_price_override_is_used(self, db_session, cashier, product):
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 1, "unit_price_cents": 800})

        assert sale.lines[0].unit_price_cents == 800
        assert sale.subtotal_cents == 800

    def test_variant_uses_variant_price_and_stock(self, db_session, cashier, product, variant):
        sale = _checkout(cashier, {"product_id": product.id, "variant_id": variant.id, "quantity": 2})

        assert sale.lines[0].unit_price_cents == 1500
        assert variant.stock_quantity == 3
        # Product-level stock untouched
        assert product.stock_quantity == 20

    def test_receipt_codes_increase(self, db_session, cashier, product):
        first = _checkout(cashier, {"product_id": product.id, "quantity": 1})
        second = _checkout(cashier, {"product_id": product.id, "quantity": 1})

        assert first.receipt_code == "S-000001"
        assert second.receipt_code == "S-000002"

    def test_discount_larger_than_total_rejected(self, db_session, cashier, product):
        with pytest.raises(ValidationError):
            _checkout(cashier, {"product_id": product.id, "quantity": 1}, discount_cents=5000)


class TestCheckoutStock:
    def test_sale_movement_recorded(self, db_session, cashier, product):
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 4})

        assert product.stock_quantity == 16
        movement = StockMovement.query.filter_by(movement_type="SALE").one()
        assert movement.quantity_delta == -4
        assert movement.reference == sale.receipt_code
        assert movement.reason == "Sale transaction"
        assert inventory_service.get_ledger_quantity(product.id) == 16

    def test_oversell_rejected_and_nothing_persisted(self, db_session, cashier, product):
        other = make_product(db_session, sku="OTHER-1", price_cents=500, stock=1)

        with pytest.raises(InsufficientStock) as exc:
            _checkout(
                cashier,
                {"product_id": product.id, "quantity": 2},
                {"product_id": other.id, "quantity": 2},
            )

        assert exc.value.details["available"] == 1
        assert exc.value.details["requested"] == 2

        # First line's decrement rolled back with the rest
        assert product.stock_quantity == 20
        assert other.stock_quantity == 1
        assert Sale.query.count() == 0
        assert StockMovement.query.filter_by(movement_type="SALE").count() == 0
        assert inventory_service.reconcile_stock() == []

        # Receipt number was not consumed
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 1})
        assert sale.receipt_code == "S-000001"

    def test_inactive_product_not_sellable(self, db_session, cashier, product):
        product.is_active = False
        db_session.commit()

        with pytest.raises(NotFound):
            _checkout(cashier, {"product_id": product.id, "quantity": 1})

    def test_variant_of_other_product_rejected(self, db_session, cashier, product, variant):
        other = make_product(db_session, sku="OTHER-2", price_cents=500, stock=5)

        with pytest.raises(ValidationError):
            _checkout(cashier, {"product_id": other.id, "variant_id": variant.id, "quantity": 1})

    @pytest.mark.parametrize("quantity", [0, -1, "2.5", True, None, 10**20])
    def test_invalid_quantity_rejected(self, db_session, cashier, product, quantity):
        with pytest.raises(ValidationError):
            _checkout(cashier, {"product_id": product.id, "quantity": quantity})

    def test_line_amount_over_maximum_rejected(self, db_session, cashier, product):
        with pytest.raises(ValidationError) as exc:
            _checkout(cashier, {"product_id": product.id, "quantity": 2, "unit_price_cents": 999_999_999})

        assert exc.value.details["max_amount_cents"] == 999_999_999
        assert product.stock_quantity == 20
        assert Sale.query.count() == 0

    def test_empty_cart_rejected(self, db_session, cashier):
        with pytest.raises(ValidationError):
            sales_service.checkout(operator_id=cashier.id, items=[], payment_method="CASH")


class TestPayments:
    def test_cash_change(self, db_session, cashier, product):
        sale = _checkout(
            cashier,
            {"product_id": product.id, "quantity": 2},
            payment_method="CASH",
            cash_received_cents=3000,
        )

        assert sale.cash_received_cents == 3000
        assert sale.change_given_cents == 3000 - 2165

    def test_cash_short_rejected(self, db_session, cashier, product):
        with pytest.raises(ValidationError):
            _checkout(
                cashier,
                {"product_id": product.id, "quantity": 2},
                payment_method="CASH",
                cash_received_cents=2000,
            )
        assert product.stock_quantity == 20

    def test_no_change_for_card(self, db_session, cashier, product):
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 1}, cash_received_cents=5000)

        assert sale.change_given_cents == 0
        assert sale.cash_received_cents is None

    def test_mixed_payment_exact(self, db_session, cashier, product):
        sale = _checkout(
            cashier,
            {"product_id": product.id, "quantity": 2},
            payment_method="MIXED",
            payment_splits=[
                {"payment_method": "CASH", "amount_cents": 1000},
                {"payment_method": "CARD", "amount_cents": 1165},
            ],
        )

        splits = PaymentSplit.query.filter_by(sale_id=sale.id).all()
        assert sorted(s.amount_cents for s in splits) == [1000, 1165]
        assert sale.change_given_cents == 0

    def test_mixed_payment_within_one_cent(self, db_session, cashier, product):
        sale = _checkout(
            cashier,
            {"product_id": product.id, "quantity": 2},
            payment_method="MIXED",
            payment_splits=[
                {"payment_method": "CASH", "amount_cents": 1000},
                {"payment_method": "CARD", "amount_cents": 1164},
            ],
        )
        assert sale.final_amount_cents == 2165

    def test_mixed_payment_mismatch_rolls_back(self, db_session, cashier, product):
        with pytest.raises(InvalidPaymentSplit) as exc:
            _checkout(
                cashier,
                {"product_id": product.id, "quantity": 2},
                payment_method="MIXED",
                payment_splits=[
                    {"payment_method": "CASH", "amount_cents": 1000},
                    {"payment_method": "CARD", "amount_cents": 1000},
                ],
            )

        assert exc.value.details == {"split_total_cents": 2000, "final_amount_cents": 2165}
        assert product.stock_quantity == 20
        assert Sale.query.count() == 0
        assert PaymentSplit.query.count() == 0

    def test_mixed_needs_two_splits(self, db_session, cashier, product):
        with pytest.raises(InvalidPaymentSplit):
            _checkout(
                cashier,
                {"product_id": product.id, "quantity": 1},
                payment_method="MIXED",
                payment_splits=[{"payment_method": "CARD", "amount_cents": 1083}],
            )

    def test_splits_only_for_mixed(self, db_session, cashier, product):
        with pytest.raises(InvalidPaymentSplit):
            _checkout(
                cashier,
                {"product_id": product.id, "quantity": 1},
                payment_method="CARD",
                payment_splits=[
                    {"payment_method": "CASH", "amount_cents": 500},
                    {"payment_method": "CARD", "amount_cents": 583},
                ],
            )

    def test_unknown_payment_method(self, db_session, cashier, product):
        with pytest.raises(ValidationError):
            _checkout(cashier, {"product_id": product.id, "quantity": 1}, payment_method="CHEQUE")


class TestCheckoutLoyalty:
    def test_points_earned(self, db_session, cashier, untaxed_product, customer):
        sale = _checkout(
            cashier,
            {"product_id": untaxed_product.id, "quantity": 2},
            customer_id=customer.id,
        )

        # 1200.00 at 1 point per 10.00, BRONZE 1.0x
        assert sale.points_earned == 120
        assert customer.loyalty_points == 120
        earned = PointsTransaction.query.filter_by(customer_id=customer.id, transaction_type="EARNED").one()
        assert earned.sale_id == sale.id

    def test_no_points_without_customer(self, db_session, cashier, untaxed_product):
        sale = _checkout(cashier, {"product_id": untaxed_product.id, "quantity": 1})

        assert sale.points_earned == 0
        assert PointsTransaction.query.count() == 0

    def test_points_redeemed_at_checkout(self, db_session, cashier, untaxed_product, customer):
        _checkout(cashier, {"product_id": untaxed_product.id, "quantity": 1}, customer_id=customer.id)
        assert customer.loyalty_points == 60

        sale = _checkout(
            cashier,
            {"product_id": untaxed_product.id, "quantity": 1},
            customer_id=customer.id,
            points_redeemed=50,
            loyalty_discount_cents=500,
        )

        assert sale.points_redeemed == 50
        # 60 - 50 + floor(595.00 / 10.00)
        assert customer.loyalty_points == 60 - 50 + 59

    def test_redeeming_too_many_points_rolls_back(self, db_session, cashier, untaxed_product, customer):
        with pytest.raises(InsufficientPoints):
            _checkout(
                cashier,
                {"product_id": untaxed_product.id, "quantity": 1},
                customer_id=customer.id,
                points_redeemed=10,
            )

        assert untaxed_product.stock_quantity == 10
        assert customer.loyalty_points == 0
        assert Sale.query.count() == 0

    def test_redeeming_without_customer_rejected(self, db_session, cashier, product):
        with pytest.raises(ValidationError):
            _checkout(cashier, {"product_id": product.id, "quantity": 1}, points_redeemed=5)

    def test_unknown_customer(self, db_session, cashier, product):
        with pytest.raises(NotFound):
            _checkout(cashier, {"product_id": product.id, "quantity": 1}, customer_id=999)
        assert product.stock_quantity == 20


class TestPostCommitEffects:
    def test_audit_written(self, db_session, cashier, product):
        sale = _checkout(cashier, {"product_id": product.id, "quantity": 1})

        [entry] = audit_service.list_audit_events("sale", sale.id)
        assert entry.action == "CREATE_SALE"
        assert entry.operator_id == cashier.id

    def test_low_stock_alert_raised_once(self, app, db_session, cashier, product):
        app.config["LOW_STOCK_THRESHOLD"] = 18
        try:
            _checkout(cashier, {"product_id": product.id, "quantity": 2})
            _checkout(cashier, {"product_id": product.id, "quantity": 1})
        finally:
            app.config["LOW_STOCK_THRESHOLD"] = None

        from settlement.models import StockAlert
        alerts = StockAlert.query.filter_by(product_id=product.id, alert_type="LOW_STOCK").all()
        assert len(alerts) == 1
        assert alerts[0].is_resolved is False

    def test_alert_failure_does_not_undo_sale(self, db_session, cashier, product, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("alert store down")

        monkeypatch.setattr(sales_service, "evaluate_stock_alerts", explode)

        sale = _checkout(cashier, {"product_id": product.id, "quantity": 1})

        assert db.session.get(Sale, sale.id) is not None
        assert product.stock_quantity == 19
