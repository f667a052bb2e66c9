"""
Sales Service - checkout and void

DESIGN PRINCIPLES:
- A checkout is one unit of work: stock decrements, ledger rows, the sale,
  its lines, payment splits and loyalty postings commit together or not at all.
- Stock is decremented with a conditional update, so concurrent checkouts
  can never oversell.
- Stock alerts and audit events run after the commit and can never undo it.
- A void is a status transition; nothing is deleted. Stock comes back as
  ADJUSTMENT movements and loyalty effects are reversed.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleLine, PaymentSplit
from settlement.time_utils import utcnow
from settlement.validation import (
    MAX_AMOUNT_CENTS,
    MAX_QUANTITY,
    NOTES_MAX_LENGTH,
    parse_cents,
    parse_choice,
    parse_int,
    parse_list,
    parse_text,
)
from .audit_service import ACTION_CREATE_SALE, ACTION_VOID_SALE, append_audit_event
from .alert_service import evaluate_stock_alerts
from .concurrency import best_effort, lock_for_update, run_in_transaction
from .document_service import DOCUMENT_SALE, next_document_number
from .errors import (
    AlreadyVoided,
    InvalidPaymentSplit,
    NotFound,
    Unauthorized,
    ValidationError,
)
from .inventory_service import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_SALE,
    apply_movement,
    resolve_stock_item,
)
from .loyalty_service import (
    calculate_points,
    earn_points_for_sale,
    lock_customer,
    redeem_points_for_sale,
    reverse_sale_loyalty,
)
from .operator_service import confirm_void_password, get_active_operator


# =============================================================================
# CONSTANTS
# =============================================================================

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_MOBILE = "MOBILE_PAYMENT"
PAYMENT_STORE_CREDIT = "STORE_CREDIT"
PAYMENT_MIXED = "MIXED"

PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_CARD, PAYMENT_MOBILE, PAYMENT_STORE_CREDIT, PAYMENT_MIXED]
SPLIT_PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_CARD, PAYMENT_MOBILE, PAYMENT_STORE_CREDIT]

SALE_STATUS_ACTIVE = "ACTIVE"
SALE_STATUS_VOIDED = "VOIDED"

PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
PAYMENT_STATUS_REFUNDED = "REFUNDED"
PAYMENT_STATUS_VOIDED = "VOIDED"

# MIXED splits must match the final amount to within one cent
SPLIT_TOLERANCE_CENTS = 1


# =============================================================================
# HELPERS
# =============================================================================

def tax_for(amount_cents: int, rate_bps: int) -> int:
    """Half-up rounding of amount * rate, rate in basis points (825 = 8.25%)."""
    if amount_cents <= 0 or not rate_bps:
        return 0
    return (amount_cents * rate_bps + 5000) // 10000


def _normalize_items(items) -> list[dict]:
    items = parse_list(items, "items", min_items=1)
    normalized = []
    for index, item in enumerate(items):
        field = f"items[{index}]"
        normalized.append({
            "product_id": parse_int(item.get("product_id"), f"{field}.product_id", minimum=1),
            "variant_id": parse_int(item.get("variant_id"), f"{field}.variant_id", required=False, minimum=1),
            "quantity": parse_int(item.get("quantity"), f"{field}.quantity", minimum=1, maximum=MAX_QUANTITY),
            "unit_price_cents": parse_cents(item.get("unit_price_cents"), f"{field}.unit_price_cents", default=None),
            "discount_cents": parse_cents(item.get("discount_cents"), f"{field}.discount_cents"),
        })
    return normalized


def _normalize_splits(payment_method: str, payment_splits) -> list[dict]:
    if payment_method != PAYMENT_MIXED:
        if payment_splits:
            raise InvalidPaymentSplit("Payment splits are only accepted for MIXED payments")
        return []

    splits = parse_list(payment_splits, "payment_splits", required=False)
    if len(splits) < 2:
        raise InvalidPaymentSplit(
            "Mixed payment requires at least two payment splits",
            details={"split_count": len(splits)},
        )
    normalized = []
    for index, split in enumerate(splits):
        field = f"payment_splits[{index}]"
        amount = parse_cents(split.get("amount_cents"), f"{field}.amount_cents", required=True)
        if amount <= 0:
            raise InvalidPaymentSplit(f"{field}.amount_cents must be positive")
        normalized.append({
            "payment_method": parse_choice(split.get("payment_method"), f"{field}.payment_method", SPLIT_PAYMENT_METHODS),
            "amount_cents": amount,
        })
    return normalized


def _stock_items(lines) -> list[tuple[int, int | None]]:
    seen = []
    for line in lines:
        key = (line.product_id, line.variant_id)
        if key not in seen:
            seen.append(key)
    return seen


def _fire_stock_alerts(stock_items) -> None:
    for product_id, variant_id in stock_items:
        best_effort(
            f"stock alerts for product {product_id}",
            evaluate_stock_alerts,
            product_id,
            variant_id,
        )


# =============================================================================
# CHECKOUT
# =============================================================================

def checkout(
    *,
    operator_id: int,
    items,
    payment_method: str,
    customer_id: int | None = None,
    payment_splits=None,
    cash_received_cents: int | None = None,
    discount_cents: int = 0,
    loyalty_discount_cents: int = 0,
    points_redeemed: int = 0,
    discount_reason: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Record a completed sale.

    Args:
        operator_id: Operator ringing up the sale
        items: [{product_id, variant_id?, quantity, unit_price_cents?, discount_cents?}]
        payment_method: CASH, CARD, MOBILE_PAYMENT, STORE_CREDIT or MIXED
        customer_id: Optional loyalty customer
        payment_splits: [{payment_method, amount_cents}], MIXED only
        cash_received_cents: Cash tendered, CASH only
        discount_cents: Sale-level discount
        loyalty_discount_cents: Discount funded by loyalty
        points_redeemed: Points spent on this sale (requires customer)

    Returns:
        The committed Sale

    Raises:
        ValidationError, NotFound, InsufficientStock, InvalidPaymentSplit,
        InsufficientPoints. Nothing is persisted when any of these is raised.
    """
    lines_in = _normalize_items(items)
    customer_id = parse_int(customer_id, "customer_id", required=False, minimum=1)
    payment_method = parse_choice(payment_method, "payment_method", PAYMENT_METHODS)
    splits_in = _normalize_splits(payment_method, payment_splits)
    discount_cents = parse_cents(discount_cents, "discount_cents")
    loyalty_discount_cents = parse_cents(loyalty_discount_cents, "loyalty_discount_cents")
    points_redeemed = parse_int(points_redeemed, "points_redeemed", required=False, minimum=0, default=0)
    cash_received_cents = parse_cents(cash_received_cents, "cash_received_cents", default=None)
    discount_reason = parse_text(discount_reason, "discount_reason")
    notes = parse_text(notes, "notes", max_length=NOTES_MAX_LENGTH)

    if points_redeemed and customer_id is None:
        raise ValidationError("points_redeemed requires a customer")

    def _op():
        operator = get_active_operator(operator_id)
        customer = lock_customer(customer_id) if customer_id is not None else None

        receipt_code = next_document_number(DOCUMENT_SALE)

        subtotal = 0
        tax = 0
        lines = []
        for item in lines_in:
            product, variant = resolve_stock_item(
                item["product_id"], item["variant_id"], require_active=True
            )
            unit_price = item["unit_price_cents"]
            if unit_price is None:
                unit_price = variant.price_cents if variant is not None else product.price_cents

            line_gross = unit_price * item["quantity"]
            if line_gross > MAX_AMOUNT_CENTS:
                raise ValidationError(
                    "Line amount exceeds maximum",
                    details={"product_id": product.id, "max_amount_cents": MAX_AMOUNT_CENTS},
                )
            if item["discount_cents"] > line_gross:
                raise ValidationError(
                    "Line discount exceeds line amount",
                    details={"product_id": product.id, "line_amount_cents": line_gross},
                )
            line_subtotal = line_gross - item["discount_cents"]
            line_tax = tax_for(line_subtotal, product.tax_rate_bps)

            apply_movement(
                product,
                variant,
                movement_type=MOVEMENT_SALE,
                quantity_delta=-item["quantity"],
                reason="Sale transaction",
                reference=receipt_code,
                operator_id=operator.id,
            )

            subtotal += line_subtotal
            tax += line_tax
            lines.append(SaleLine(
                product_id=product.id,
                variant_id=variant.id if variant is not None else None,
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                discount_cents=item["discount_cents"],
                subtotal_cents=line_subtotal,
                tax_cents=line_tax,
            ))

        final_amount = subtotal + tax - discount_cents - loyalty_discount_cents
        if final_amount < 0:
            raise ValidationError(
                "Discounts exceed the sale total",
                details={"subtotal_cents": subtotal, "tax_cents": tax},
            )

        if splits_in:
            split_total = sum(split["amount_cents"] for split in splits_in)
            if abs(split_total - final_amount) > SPLIT_TOLERANCE_CENTS:
                raise InvalidPaymentSplit(
                    "Payment splits do not match final amount",
                    details={"split_total_cents": split_total, "final_amount_cents": final_amount},
                )

        change_given = 0
        if payment_method == PAYMENT_CASH and cash_received_cents is not None:
            if cash_received_cents < final_amount:
                raise ValidationError(
                    "Cash received is less than the amount due",
                    details={"cash_received_cents": cash_received_cents, "final_amount_cents": final_amount},
                )
            change_given = cash_received_cents - final_amount

        points_earned = 0
        if customer is not None:
            points_earned = calculate_points(final_amount, customer.loyalty_tier)["points"]

        sale = Sale(
            receipt_code=receipt_code,
            operator_id=operator.id,
            customer_id=customer.id if customer is not None else None,
            subtotal_cents=subtotal,
            tax_cents=tax,
            discount_cents=discount_cents,
            loyalty_discount_cents=loyalty_discount_cents,
            final_amount_cents=final_amount,
            discount_reason=discount_reason,
            payment_method=payment_method,
            cash_received_cents=cash_received_cents if payment_method == PAYMENT_CASH else None,
            change_given_cents=change_given,
            payment_status=PAYMENT_STATUS_COMPLETED,
            status=SALE_STATUS_ACTIVE,
            points_earned=points_earned,
            points_redeemed=points_redeemed,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            line.sale_id = sale.id
            db.session.add(line)
        for split in splits_in:
            db.session.add(PaymentSplit(sale_id=sale.id, **split))
        db.session.flush()

        if customer is not None:
            if points_redeemed:
                redeem_points_for_sale(customer, sale, points_redeemed)
            earn_points_for_sale(customer, sale, points_earned)

        return sale

    sale = run_in_transaction(_op)

    _fire_stock_alerts(_stock_items(sale.lines))
    best_effort(
        f"audit for sale {sale.id}",
        append_audit_event,
        action=ACTION_CREATE_SALE,
        entity_type="sale",
        entity_id=sale.id,
        operator_id=sale.operator_id,
        details={
            "receipt_code": sale.receipt_code,
            "final_amount_cents": sale.final_amount_cents,
            "payment_method": sale.payment_method,
        },
    )
    current_app.logger.info(
        "Sale %s completed: %s cents via %s", sale.receipt_code, sale.final_amount_cents, sale.payment_method
    )
    return sale


# =============================================================================
# VOID
# =============================================================================

def void_sale(
    *,
    sale_id: int,
    operator_id: int,
    reason: str,
    restore_stock: bool = True,
    password: str | None = None,
) -> dict:
    """
    Void a completed sale.

    Only ACTIVE, non-return sales with no returns recorded against them can
    be voided. Voiding another operator's sale needs an elevated role.

    Returns:
        {"sale": Sale, "loyalty": {...} | None, "restocked": [...]}

    Raises:
        NotFound, AlreadyVoided, ValidationError, Unauthorized
    """
    reason = parse_text(reason, "reason", required=True)

    def _op():
        operator = get_active_operator(operator_id)
        sale = lock_for_update(Sale.query.filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFound("Sale not found", details={"sale_id": sale_id})
        if sale.status == SALE_STATUS_VOIDED:
            raise AlreadyVoided("Sale is already voided", details={"sale_id": sale.id})
        if sale.is_return:
            raise ValidationError("Return records cannot be voided", details={"sale_id": sale.id})
        if sale.returns:
            raise ValidationError(
                "Sale has returns recorded against it and cannot be voided",
                details={"sale_id": sale.id, "return_ids": [r.id for r in sale.returns]},
            )
        if sale.operator_id != operator.id and not operator.is_elevated:
            raise Unauthorized(
                "Only a manager or admin can void another operator's sale",
                details={"sale_id": sale.id, "operator_id": operator.id},
            )
        confirm_void_password(operator, password)

        restocked = []
        if restore_stock:
            for line in sale.lines:
                product, variant = resolve_stock_item(line.product_id, line.variant_id)
                apply_movement(
                    product,
                    variant,
                    movement_type=MOVEMENT_ADJUSTMENT,
                    quantity_delta=line.quantity,
                    reason=f"Voided sale #{sale.receipt_code}",
                    reference=sale.receipt_code,
                    operator_id=operator.id,
                )
                restocked.append({
                    "product_id": line.product_id,
                    "variant_id": line.variant_id,
                    "quantity": line.quantity,
                })

        loyalty = None
        if sale.customer_id is not None:
            customer = lock_customer(sale.customer_id)
            loyalty = reverse_sale_loyalty(customer, sale)

        sale.status = SALE_STATUS_VOIDED
        sale.payment_status = PAYMENT_STATUS_VOIDED
        sale.voided_by_operator_id = operator.id
        sale.voided_at = utcnow()
        sale.void_reason = reason
        db.session.flush()

        return {"sale": sale, "loyalty": loyalty, "restocked": restocked}

    result = run_in_transaction(_op)
    sale = result["sale"]

    _fire_stock_alerts([(item["product_id"], item["variant_id"]) for item in result["restocked"]])
    best_effort(
        f"audit for void of sale {sale.id}",
        append_audit_event,
        action=ACTION_VOID_SALE,
        entity_type="sale",
        entity_id=sale.id,
        operator_id=operator_id,
        details={
            "receipt_code": sale.receipt_code,
            "reason": reason,
            "restore_stock": restore_stock,
            "loyalty": result["loyalty"],
        },
    )
    current_app.logger.info("Sale %s voided by operator %s", sale.receipt_code, operator_id)
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def get_sale_detail(sale_id: int) -> dict:
    sale = get_sale(sale_id)
    return {
        "sale": sale.to_dict(),
        "lines": [line.to_dict() for line in sale.lines],
        "payment_splits": [split.to_dict() for split in sale.payment_splits],
        "return_ids": [r.id for r in sale.returns],
    }
