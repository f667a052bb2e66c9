from __future__ import annotations

from ..extensions import db
from settlement.time_utils import to_utc_z, utcnow


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    MOVEMENT TYPES:
    - SALE: Checkout (negative)
    - RETURN: Restockable return (positive)
    - ADJUSTMENT: Manual correction, write-off of damaged returns, void restock
    - TRANSFER: Location move, always written as an out/in pair
    - PURCHASE: Goods received (positive)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_variant", "product_id", "variant_id"),
        db.Index("ix_stock_movements_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    # Receipt code or transfer id the movement belongs to
    reference = db.Column(db.String(64), nullable=True, index=True)

    from_location = db.Column(db.String(64), nullable=True)
    to_location = db.Column(db.String(64), nullable=True)

    operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "reference": self.reference,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "operator_id": self.operator_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class StockAlert(db.Model):
    """Low/high stock notices raised after stock-changing operations commit."""
    __tablename__ = "stock_alerts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    alert_type = db.Column(db.String(16), nullable=False)  # LOW_STOCK, HIGH_STOCK
    stock_quantity = db.Column(db.Integer, nullable=False)
    threshold = db.Column(db.Integer, nullable=False)
    message = db.Column(db.String(255), nullable=False)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "alert_type": self.alert_type,
            "stock_quantity": self.stock_quantity,
            "threshold": self.threshold,
            "message": self.message,
            "is_resolved": self.is_resolved,
            "created_at": to_utc_z(self.created_at),
        }
