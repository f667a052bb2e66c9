# Overview: Loyalty points and tier rules; every balance change goes through _post_points.

"""
Loyalty Points & Tier Service

DESIGN PRINCIPLES:
- customer.loyalty_points == SUM(points_transactions.points), always.
  The only writer of loyalty_points is _post_points, which also appends
  the PointsTransaction.
- Tier is derived from lifetime earned points:
      SUM(EARNED points > 0) + SUM(points of ADJUSTED rows with reverses_earned)
- Earning only ever raises the tier. Only the void path (reverse_sale_loyalty)
  may lower lifetime points and therefore the tier.
- loyalty_tier_configs is the single authoritative tier table; DEFAULT_TIERS
  fills in tiers that have no row.
- Functions that take a Customer run inside the caller's unit of work and
  never commit.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import Customer, LoyaltyReward, LoyaltyTierConfig, PointsTransaction
from settlement.time_utils import add_months, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .errors import InsufficientPoints, NotFound, ValidationError


# =============================================================================
# CONSTANTS
# =============================================================================

TIER_BRONZE = "BRONZE"
TIER_SILVER = "SILVER"
TIER_GOLD = "GOLD"
TIER_PLATINUM = "PLATINUM"

TIER_ORDER = [TIER_BRONZE, TIER_SILVER, TIER_GOLD, TIER_PLATINUM]

DEFAULT_TIERS = {
    TIER_BRONZE: {"minimum_points": 0, "points_multiplier_bps": 10000, "discount_percentage": 0, "birthday_bonus": 50},
    TIER_SILVER: {"minimum_points": 500, "points_multiplier_bps": 12500, "discount_percentage": 5, "birthday_bonus": 100},
    TIER_GOLD: {"minimum_points": 1500, "points_multiplier_bps": 15000, "discount_percentage": 10, "birthday_bonus": 200},
    TIER_PLATINUM: {"minimum_points": 3000, "points_multiplier_bps": 20000, "discount_percentage": 15, "birthday_bonus": 500},
}

TXN_EARNED = "EARNED"
TXN_REDEEMED = "REDEEMED"
TXN_ADJUSTED = "ADJUSTED"
TXN_BIRTHDAY_BONUS = "BIRTHDAY_BONUS"

REWARD_STORE_CREDIT = "STORE_CREDIT"
REWARD_DISCOUNT_FIXED = "DISCOUNT_FIXED"
REWARD_FREE_PRODUCT = "FREE_PRODUCT"

VALID_REWARD_TYPES = [REWARD_STORE_CREDIT, REWARD_DISCOUNT_FIXED, REWARD_FREE_PRODUCT]


# =============================================================================
# TIER TABLE
# =============================================================================

def get_tier_config(tier: str) -> dict:
    if tier not in DEFAULT_TIERS:
        raise ValidationError(f"Unknown loyalty tier: {tier}")
    row = LoyaltyTierConfig.query.filter_by(tier=tier).first()
    if row is not None:
        return row.to_dict()
    config = dict(DEFAULT_TIERS[tier])
    config["tier"] = tier
    config["points_multiplier"] = config["points_multiplier_bps"] / 10000
    config["description"] = None
    return config


def get_tier_table() -> list[dict]:
    """Effective tiers in ascending order."""
    return [get_tier_config(tier) for tier in TIER_ORDER]


def qualifying_tier(lifetime_points: int) -> str:
    qualified = TIER_BRONZE
    for config in get_tier_table():
        if lifetime_points >= config["minimum_points"]:
            qualified = config["tier"]
    return qualified


def upsert_tier_config(
    tier: str,
    *,
    minimum_points: int,
    points_multiplier_bps: int,
    discount_percentage: int = 0,
    birthday_bonus: int = 0,
    description: str | None = None,
) -> LoyaltyTierConfig:
    if tier not in DEFAULT_TIERS:
        raise ValidationError(f"Unknown loyalty tier: {tier}")
    if minimum_points < 0:
        raise ValidationError("minimum_points must be non-negative")
    if points_multiplier_bps < 10000:
        raise ValidationError("points_multiplier_bps must be at least 10000 (1.0x)")

    def _op():
        row = LoyaltyTierConfig.query.filter_by(tier=tier).first()
        if row is None:
            row = LoyaltyTierConfig(tier=tier)
            db.session.add(row)
        row.minimum_points = minimum_points
        row.points_multiplier_bps = points_multiplier_bps
        row.discount_percentage = discount_percentage
        row.birthday_bonus = birthday_bonus
        row.description = description
        db.session.flush()
        return row

    return run_in_transaction(_op)


def seed_default_tiers() -> int:
    """Write DEFAULT_TIERS rows for tiers that have none. Returns rows created."""
    created = 0
    for tier in TIER_ORDER:
        if LoyaltyTierConfig.query.filter_by(tier=tier).first() is None:
            db.session.add(LoyaltyTierConfig(tier=tier, **DEFAULT_TIERS[tier]))
            created += 1
    db.session.commit()
    return created


# =============================================================================
# POINTS ARITHMETIC
# =============================================================================

def calculate_points(final_amount_cents: int, tier: str) -> dict:
    """
    base  = floor(final / points_per_unit)
    bonus = floor(base * (multiplier - 1))
    """
    if final_amount_cents <= 0:
        return {"base_points": 0, "bonus_points": 0, "points": 0}

    per_unit_cents = current_app.config.get("LOYALTY_POINTS_PER_UNIT", 10) * 100
    multiplier_bps = get_tier_config(tier)["points_multiplier_bps"]

    base_points = final_amount_cents // per_unit_cents
    bonus_points = base_points * (multiplier_bps - 10000) // 10000
    return {
        "base_points": base_points,
        "bonus_points": bonus_points,
        "points": base_points + bonus_points,
    }


def get_lifetime_earned(customer_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(PointsTransaction.points), 0)
    ).filter(
        PointsTransaction.customer_id == customer_id,
        or_(
            and_(PointsTransaction.transaction_type == TXN_EARNED, PointsTransaction.points > 0),
            PointsTransaction.reverses_earned.is_(True),
        ),
    ).scalar()
    return int(total or 0)


def get_ledger_balance(customer_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(PointsTransaction.points), 0)
    ).filter(PointsTransaction.customer_id == customer_id).scalar()
    return int(total or 0)


# =============================================================================
# IN-TRANSACTION MUTATIONS
# =============================================================================

def lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(Customer.query.filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def _post_points(
    customer: Customer,
    transaction_type: str,
    points: int,
    description: str,
    *,
    sale_id: int | None = None,
    reverses_earned: bool = False,
) -> PointsTransaction:
    txn = PointsTransaction(
        customer_id=customer.id,
        sale_id=sale_id,
        transaction_type=transaction_type,
        points=points,
        description=description,
        reverses_earned=reverses_earned,
    )
    db.session.add(txn)
    customer.loyalty_points = (customer.loyalty_points or 0) + points
    db.session.flush()
    return txn


def apply_tier_upgrade(customer: Customer) -> str | None:
    """Raise the tier if lifetime points now qualify for a higher one. Never lowers."""
    lifetime = get_lifetime_earned(customer.id)
    qualified = qualifying_tier(lifetime)
    current = customer.loyalty_tier or TIER_BRONZE

    if TIER_ORDER.index(qualified) <= TIER_ORDER.index(current):
        return None

    customer.loyalty_tier = qualified
    _post_points(
        customer,
        TXN_ADJUSTED,
        0,
        f"Tier upgraded from {current} to {qualified} at {lifetime} lifetime points",
    )
    return qualified


def earn_points_for_sale(customer: Customer, sale, points: int) -> str | None:
    """Credit EARNED points for a checkout, then re-evaluate the tier."""
    if points <= 0:
        return None
    _post_points(
        customer,
        TXN_EARNED,
        points,
        f"Purchase {sale.receipt_code}: {points} points earned",
        sale_id=sale.id,
    )
    return apply_tier_upgrade(customer)


def redeem_points_for_sale(customer: Customer, sale, points: int) -> PointsTransaction:
    if points > customer.loyalty_points:
        raise InsufficientPoints(
            f"Insufficient points. Customer has {customer.loyalty_points}, needs {points}",
            details={"balance": customer.loyalty_points, "requested": points},
        )
    return _post_points(
        customer,
        TXN_REDEEMED,
        -points,
        f"Redeemed at purchase {sale.receipt_code}",
        sale_id=sale.id,
    )


def reverse_points_for_return(customer: Customer, original_sale, points: int, return_code: str):
    """Proportional take-back for a return. Lifetime points are untouched."""
    if points <= 0:
        return None
    return _post_points(
        customer,
        TXN_ADJUSTED,
        -points,
        f"Points deducted for return {return_code} of sale {original_sale.receipt_code}",
        sale_id=original_sale.id,
    )


def reverse_sale_loyalty(customer: Customer, sale) -> dict:
    """
    Undo every loyalty effect of a voided sale.

    Earned points come back out of the balance AND out of lifetime points,
    so the tier is recomputed and may drop. Redeemed points are restored.
    """
    reversed_earned = 0
    restored_redeemed = 0
    previous_tier = customer.loyalty_tier

    if sale.points_earned and sale.points_earned > 0:
        _post_points(
            customer,
            TXN_ADJUSTED,
            -sale.points_earned,
            f"Reversed from voided sale #{sale.receipt_code}",
            sale_id=sale.id,
            reverses_earned=True,
        )
        reversed_earned = sale.points_earned
        customer.loyalty_tier = qualifying_tier(get_lifetime_earned(customer.id))

    if sale.points_redeemed and sale.points_redeemed > 0:
        _post_points(
            customer,
            TXN_ADJUSTED,
            sale.points_redeemed,
            f"Refunded from voided sale #{sale.receipt_code}",
            sale_id=sale.id,
        )
        restored_redeemed = sale.points_redeemed

    return {
        "points_reversed": reversed_earned,
        "points_restored": restored_redeemed,
        "previous_tier": previous_tier,
        "tier": customer.loyalty_tier,
    }


def issue_store_credit(customer: Customer, amount_cents: int, description: str, source_sale_id: int | None = None) -> LoyaltyReward:
    months = current_app.config.get("STORE_CREDIT_VALIDITY_MONTHS", 6)
    reward = LoyaltyReward(
        customer_id=customer.id,
        reward_type=REWARD_STORE_CREDIT,
        reward_value_cents=amount_cents,
        points_cost=0,
        description=description,
        source_sale_id=source_sale_id,
        expires_at=add_months(utcnow(), months),
    )
    db.session.add(reward)
    db.session.flush()
    return reward


# =============================================================================
# STANDALONE OPERATIONS
# =============================================================================

def redeem_points(
    *,
    customer_id: int,
    points: int,
    reward_type: str,
    reward_value_cents: int,
    description: str | None = None,
) -> dict:
    """Spend points on a reward outside of a checkout."""
    if points <= 0:
        raise ValidationError("points must be positive")
    if reward_type not in VALID_REWARD_TYPES:
        raise ValidationError(f"Invalid reward type: {reward_type}")

    def _op():
        customer = lock_customer(customer_id)
        if customer.loyalty_points < points:
            raise InsufficientPoints(
                f"Insufficient points. Customer has {customer.loyalty_points}, needs {points}",
                details={"balance": customer.loyalty_points, "requested": points},
            )
        _post_points(
            customer,
            TXN_REDEEMED,
            -points,
            description or f"Redeemed {points} points for {reward_type}",
        )
        reward = LoyaltyReward(
            customer_id=customer.id,
            reward_type=reward_type,
            reward_value_cents=reward_value_cents,
            points_cost=points,
            description=description or f"{reward_type} reward",
            redeemed_at=utcnow(),
            is_active=False,
        )
        db.session.add(reward)
        db.session.flush()
        return {"reward": reward, "balance": customer.loyalty_points}

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_loyalty_status(customer_id: int) -> dict:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})

    lifetime = get_lifetime_earned(customer.id)
    current = get_tier_config(customer.loyalty_tier)
    index = TIER_ORDER.index(customer.loyalty_tier)
    next_tier = None
    if index < len(TIER_ORDER) - 1:
        next_config = get_tier_config(TIER_ORDER[index + 1])
        next_tier = {
            "tier": next_config["tier"],
            "minimum_points": next_config["minimum_points"],
            "points_needed": max(0, next_config["minimum_points"] - lifetime),
        }

    now = utcnow()
    active_rewards = LoyaltyReward.query.filter(
        LoyaltyReward.customer_id == customer.id,
        LoyaltyReward.is_active.is_(True),
        or_(LoyaltyReward.expires_at.is_(None), LoyaltyReward.expires_at >= now),
    ).order_by(LoyaltyReward.id.desc()).all()

    return {
        "customer": customer.to_dict(),
        "points": {"current": customer.loyalty_points, "lifetime": lifetime},
        "tier": {
            "current": customer.loyalty_tier,
            "multiplier": current["points_multiplier"],
            "discount_percentage": current["discount_percentage"],
            "birthday_bonus": current["birthday_bonus"],
            "next": next_tier,
        },
        "active_rewards": [reward.to_dict() for reward in active_rewards],
    }


def list_points_transactions(customer_id: int, limit: int = 100) -> list[PointsTransaction]:
    if db.session.get(Customer, customer_id) is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return PointsTransaction.query.filter_by(
        customer_id=customer_id
    ).order_by(PointsTransaction.id.desc()).limit(limit).all()
