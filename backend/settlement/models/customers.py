from __future__ import annotations

from ..extensions import db
from settlement.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer loyalty state.

    loyalty_points is only ever changed together with a PointsTransaction
    row, so it always equals SUM(points_transactions.points).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    loyalty_tier = db.Column(db.String(16), nullable=False, default="BRONZE")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "loyalty_points": self.loyalty_points,
            "loyalty_tier": self.loyalty_tier,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - EARNED: Points earned from a sale
    - REDEEMED: Points spent (negative)
    - ADJUSTED: Return/void reversals, tier-upgrade markers (0 points)
    - BIRTHDAY_BONUS: Granted by the external birthday job

    reverses_earned marks ADJUSTED rows that take back EARNED points for
    lifetime purposes (void only). Lifetime earned is
        SUM(EARNED points > 0) + SUM(points WHERE reverses_earned)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    reverses_earned = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("points_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "description": self.description,
            "reverses_earned": self.reverses_earned,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyTierConfig(db.Model):
    """
    Authoritative tier thresholds and multipliers.

    Code defaults in loyalty_service.DEFAULT_TIERS apply only to tiers that
    have no row here.
    """
    __tablename__ = "loyalty_tier_configs"
    __table_args__ = (
        db.UniqueConstraint("tier", name="uq_loyalty_tier_configs_tier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tier = db.Column(db.String(16), nullable=False)
    minimum_points = db.Column(db.Integer, nullable=False)
    # Basis points: 12500 => 1.25x
    points_multiplier_bps = db.Column(db.Integer, nullable=False, default=10000)
    discount_percentage = db.Column(db.Integer, nullable=False, default=0)
    birthday_bonus = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "minimum_points": self.minimum_points,
            "points_multiplier_bps": self.points_multiplier_bps,
            "points_multiplier": self.points_multiplier_bps / 10000,
            "discount_percentage": self.discount_percentage,
            "birthday_bonus": self.birthday_bonus,
            "description": self.description,
        }


class LoyaltyReward(db.Model):
    """Store credit issued by returns and rewards bought with points."""
    __tablename__ = "loyalty_rewards"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    reward_type = db.Column(db.String(24), nullable=False)  # STORE_CREDIT, DISCOUNT_FIXED, FREE_PRODUCT
    reward_value_cents = db.Column(db.Integer, nullable=False, default=0)
    points_cost = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    source_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    redeemed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    customer = db.relationship("Customer", backref=db.backref("loyalty_rewards", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "reward_type": self.reward_type,
            "reward_value_cents": self.reward_value_cents,
            "points_cost": self.points_cost,
            "description": self.description,
            "source_sale_id": self.source_sale_id,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "redeemed_at": to_utc_z(self.redeemed_at) if self.redeemed_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
