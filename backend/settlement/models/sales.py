from __future__ import annotations

from ..extensions import db
from settlement.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    One checkout or one return.

    Returns are stored as sales with negated monetary fields, negative-quantity
    lines and an explicit original_sale_id back-reference. Never deleted; the
    only later mutations are the void status transition and the refund
    status/annotation written when a return is recorded against the sale.

    INVARIANT (at creation):
        final_amount_cents = subtotal + tax - discount - loyalty_discount
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("receipt_code", name="uq_sales_receipt_code"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt code (e.g., "S-000123", "RET-000007")
    receipt_code = db.Column(db.String(32), nullable=False)

    operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_reason = db.Column(db.String(255), nullable=True)

    # Payment
    payment_method = db.Column(db.String(32), nullable=False, index=True)
    cash_received_cents = db.Column(db.Integer, nullable=True)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(24), nullable=False, default="COMPLETED", index=True)

    # Lifecycle status: ACTIVE, VOIDED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    # Loyalty
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    # Return records only
    original_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_reason = db.Column(db.String(255), nullable=True)
    refund_method = db.Column(db.String(32), nullable=True)
    restocking_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    # Void audit trail
    voided_by_operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    operator = db.relationship("Operator", foreign_keys=[operator_id])
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    original_sale = db.relationship(
        "Sale",
        remote_side=[id],
        backref=db.backref("returns", lazy=True, order_by="Sale.id"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_return(self) -> bool:
        return self.original_sale_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_code": self.receipt_code,
            "operator_id": self.operator_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "loyalty_discount_cents": self.loyalty_discount_cents,
            "final_amount_cents": self.final_amount_cents,
            "discount_reason": self.discount_reason,
            "payment_method": self.payment_method,
            "cash_received_cents": self.cash_received_cents,
            "change_given_cents": self.change_given_cents,
            "payment_status": self.payment_status,
            "status": self.status,
            "points_earned": self.points_earned,
            "points_redeemed": self.points_redeemed,
            "notes": self.notes,
            "original_sale_id": self.original_sale_id,
            "return_reason": self.return_reason,
            "refund_method": self.refund_method,
            "restocking_fee_cents": self.restocking_fee_cents,
            "voided_by_operator_id": self.voided_by_operator_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """
    Individual line on a sale. Immutable once created.

    Return records get their own negative-quantity lines pointing back at
    the sold line through original_line_id.
    """
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)

    # Return lines only
    original_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=True, index=True)
    condition = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "original_line_id": self.original_line_id,
            "condition": self.condition,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentSplit(db.Model):
    """Tender breakdown for MIXED payments. Sum equals the sale's final amount."""
    __tablename__ = "payment_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("payment_splits", lazy=True, order_by="PaymentSplit.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
        }
