"""
Loyalty tests: points arithmetic, tier table, upgrades and redemptions.
"""

import pytest

from settlement.models import LoyaltyTierConfig, PointsTransaction
from settlement.services import loyalty_service, sales_service
from settlement.services.errors import InsufficientPoints, NotFound, ValidationError


def _sell(operator, product, quantity, customer):
    return sales_service.checkout(
        operator_id=operator.id,
        customer_id=customer.id,
        items=[{"product_id": product.id, "quantity": quantity}],
        payment_method="CARD",
    )


class TestPointsArithmetic:
    def test_bronze_has_no_bonus(self, db_session):
        assert loyalty_service.calculate_points(12345, "BRONZE") == {
            "base_points": 12,
            "bonus_points": 0,
            "points": 12,
        }

    def test_gold_bonus_is_floored(self, db_session):
        # base 13, bonus floor(13 * 0.5) = 6
        assert loyalty_service.calculate_points(13999, "GOLD")["points"] == 19

    def test_zero_and_negative_amounts(self, db_session):
        assert loyalty_service.calculate_points(0, "PLATINUM")["points"] == 0
        assert loyalty_service.calculate_points(-5000, "PLATINUM")["points"] == 0

    def test_points_per_unit_is_configurable(self, app, db_session):
        app.config["LOYALTY_POINTS_PER_UNIT"] = 1
        try:
            assert loyalty_service.calculate_points(1250, "BRONZE")["points"] == 12
        finally:
            app.config["LOYALTY_POINTS_PER_UNIT"] = 10

    def test_unknown_tier(self, db_session):
        with pytest.raises(ValidationError):
            loyalty_service.calculate_points(1000, "DIAMOND")


class TestTierTable:
    def test_defaults_without_rows(self, db_session):
        table = loyalty_service.get_tier_table()

        assert [t["tier"] for t in table] == ["BRONZE", "SILVER", "GOLD", "PLATINUM"]
        assert [t["minimum_points"] for t in table] == [0, 500, 1500, 3000]
        assert table[1]["points_multiplier"] == 1.25

    def test_row_overrides_default(self, db_session):
        loyalty_service.upsert_tier_config("SILVER", minimum_points=200, points_multiplier_bps=11000)

        config = loyalty_service.get_tier_config("SILVER")
        assert config["minimum_points"] == 200
        assert config["points_multiplier_bps"] == 11000
        assert loyalty_service.qualifying_tier(250) == "SILVER"

    def test_upsert_updates_existing_row(self, db_session):
        loyalty_service.upsert_tier_config("GOLD", minimum_points=1000, points_multiplier_bps=15000)
        loyalty_service.upsert_tier_config("GOLD", minimum_points=1200, points_multiplier_bps=16000)

        assert LoyaltyTierConfig.query.filter_by(tier="GOLD").count() == 1
        assert loyalty_service.get_tier_config("GOLD")["minimum_points"] == 1200

    def test_multiplier_below_one_rejected(self, db_session):
        with pytest.raises(ValidationError):
            loyalty_service.upsert_tier_config("GOLD", minimum_points=1000, points_multiplier_bps=9000)

    def test_seed_default_tiers_is_idempotent(self, db_session):
        assert loyalty_service.seed_default_tiers() == 4
        assert loyalty_service.seed_default_tiers() == 0


class TestTierUpgrades:
    def test_upgrade_records_zero_point_marker(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 9, customer)

        assert customer.loyalty_tier == "SILVER"
        marker = PointsTransaction.query.filter_by(
            customer_id=customer.id, transaction_type="ADJUSTED", points=0
        ).one()
        assert "BRONZE to SILVER" in marker.description

    def test_multiplier_applies_at_time_of_sale(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 9, customer)
        assert customer.loyalty_points == 540

        sale = _sell(cashier, untaxed_product, 1, customer)
        # SILVER 1.25x: 60 + 15
        assert sale.points_earned == 75

    def test_tier_never_drops_while_earning(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 9, customer)
        assert customer.loyalty_tier == "SILVER"

        # Raising the threshold later does not demote anyone on the next sale
        loyalty_service.upsert_tier_config("SILVER", minimum_points=5000, points_multiplier_bps=12500)
        _sell(cashier, untaxed_product, 1, customer)

        assert customer.loyalty_tier == "SILVER"

    def test_redemption_does_not_lower_tier(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 9, customer)
        loyalty_service.redeem_points(
            customer_id=customer.id,
            points=540,
            reward_type="DISCOUNT_FIXED",
            reward_value_cents=2000,
        )

        assert customer.loyalty_points == 0
        assert customer.loyalty_tier == "SILVER"
        assert loyalty_service.get_lifetime_earned(customer.id) == 540


class TestRedemption:
    def test_redeem_creates_reward(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 2, customer)

        result = loyalty_service.redeem_points(
            customer_id=customer.id,
            points=100,
            reward_type="DISCOUNT_FIXED",
            reward_value_cents=500,
        )

        assert result["balance"] == 20
        assert result["reward"].points_cost == 100
        assert result["reward"].redeemed_at is not None
        assert loyalty_service.get_ledger_balance(customer.id) == 20

    def test_redeem_more_than_balance(self, db_session, customer):
        with pytest.raises(InsufficientPoints):
            loyalty_service.redeem_points(
                customer_id=customer.id,
                points=1,
                reward_type="FREE_PRODUCT",
                reward_value_cents=0,
            )
        assert PointsTransaction.query.count() == 0

    def test_invalid_reward_type(self, db_session, customer):
        with pytest.raises(ValidationError):
            loyalty_service.redeem_points(
                customer_id=customer.id,
                points=1,
                reward_type="CASHBACK",
                reward_value_cents=0,
            )


class TestLoyaltyStatus:
    def test_status_reports_next_tier(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 2, customer)

        status = loyalty_service.get_loyalty_status(customer.id)

        assert status["points"] == {"current": 120, "lifetime": 120}
        assert status["tier"]["current"] == "BRONZE"
        assert status["tier"]["next"] == {"tier": "SILVER", "minimum_points": 500, "points_needed": 380}

    def test_history_newest_first(self, db_session, cashier, untaxed_product, customer):
        _sell(cashier, untaxed_product, 1, customer)
        _sell(cashier, untaxed_product, 1, customer)

        history = loyalty_service.list_points_transactions(customer.id)
        assert [t.points for t in history] == [60, 60]
        assert history[0].id > history[1].id

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFound):
            loyalty_service.get_loyalty_status(404)
