"""
Return Processing Service

DESIGN PRINCIPLES:
- A return is a new Sale record with negative lines and negated amounts,
  pointing back at the original through original_sale_id. Each return line
  points at the sold line through original_line_id.
- Already-returned quantity is counted from those back-references, never
  parsed out of notes.
- For every sold line: SUM(returned quantity) <= sold quantity.
- Restockable conditions (NEW, OPENED) put stock back with a RETURN movement.
  Other conditions write a RETURN/ADJUSTMENT pair that nets to zero, so the
  ledger shows the item came back and was written off.
- Refund per line is unit price * quantity less the prorated line discount.
  Tax is not refunded here.
- Points are taken back in proportion to the refund. Lifetime points and
  tier are left alone.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleLine
from settlement.time_utils import utcnow, whole_days_between
from settlement.validation import (
    MAX_QUANTITY,
    NOTES_MAX_LENGTH,
    parse_cents,
    parse_choice,
    parse_int,
    parse_list,
    parse_text,
)
from .audit_service import ACTION_PROCESS_RETURN, append_audit_event
from .alert_service import evaluate_stock_alerts
from .concurrency import best_effort, lock_for_update, run_in_transaction
from .document_service import DOCUMENT_RETURN, next_document_number
from .errors import (
    AlreadyVoided,
    NotFound,
    ReturnQuantityExceeded,
    ReturnWindowExpired,
    ValidationError,
)
from .inventory_service import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_RETURN,
    apply_movement,
    record_movement,
    resolve_stock_item,
)
from .loyalty_service import issue_store_credit, lock_customer, reverse_points_for_return
from .operator_service import get_active_operator
from .sales_service import (
    PAYMENT_STATUS_COMPLETED,
    PAYMENT_STATUS_PARTIALLY_REFUNDED,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    SALE_STATUS_ACTIVE,
    SALE_STATUS_VOIDED,
)


# =============================================================================
# RETURN CONSTANTS
# =============================================================================

CONDITION_NEW = "NEW"
CONDITION_OPENED = "OPENED"
CONDITION_DAMAGED = "DAMAGED"
CONDITION_DEFECTIVE = "DEFECTIVE"

CONDITIONS = [CONDITION_NEW, CONDITION_OPENED, CONDITION_DAMAGED, CONDITION_DEFECTIVE]
RESTOCKABLE_CONDITIONS = [CONDITION_NEW, CONDITION_OPENED]

REFUND_CASH = "CASH"
REFUND_CARD = "CARD"
REFUND_MOBILE = "MOBILE_PAYMENT"
REFUND_STORE_CREDIT = "STORE_CREDIT"
REFUND_ORIGINAL_PAYMENT = "ORIGINAL_PAYMENT"

REFUND_METHODS = [REFUND_CASH, REFUND_CARD, REFUND_MOBILE, REFUND_STORE_CREDIT, REFUND_ORIGINAL_PAYMENT]

# StockMovement.reason column width
MOVEMENT_REASON_MAX_LENGTH = 255


# =============================================================================
# HELPERS
# =============================================================================

def prorate(amount_cents: int, part: int, whole: int) -> int:
    """Half-up share of amount for part/whole units."""
    if whole <= 0 or amount_cents <= 0:
        return 0
    return (amount_cents * part * 2 + whole) // (2 * whole)


def returned_so_far(original_sale_id: int) -> dict[int, dict]:
    """
    Quantities and discounts already returned, keyed by original line id.

    Return lines carry negative quantities; the result is positive.
    """
    rows = db.session.query(
        SaleLine.original_line_id,
        func.coalesce(func.sum(SaleLine.quantity), 0),
        func.coalesce(func.sum(SaleLine.discount_cents), 0),
    ).join(
        Sale, Sale.id == SaleLine.sale_id
    ).filter(
        Sale.original_sale_id == original_sale_id,
        SaleLine.original_line_id.isnot(None),
    ).group_by(SaleLine.original_line_id).all()

    return {
        line_id: {"quantity": -int(quantity), "discount_cents": int(discount)}
        for line_id, quantity, discount in rows
    }


def _movement_reason(condition: str, reason: str) -> str:
    return f"Return - {condition} - {reason}"[:MOVEMENT_REASON_MAX_LENGTH]


def _normalize_return_items(items) -> list[dict]:
    items = parse_list(items, "items", min_items=1)
    normalized = []
    for index, item in enumerate(items):
        field = f"items[{index}]"
        normalized.append({
            "line_id": parse_int(item.get("line_id"), f"{field}.line_id", minimum=1),
            "quantity": parse_int(item.get("quantity"), f"{field}.quantity", minimum=1, maximum=MAX_QUANTITY),
            "condition": parse_choice(item.get("condition"), f"{field}.condition", CONDITIONS),
        })
    return normalized


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def process_return(
    *,
    original_sale_id: int,
    items,
    reason: str,
    refund_method: str,
    operator_id: int,
    restocking_fee_cents: int = 0,
    notes: str | None = None,
) -> dict:
    """
    Record a return against an earlier sale.

    Args:
        original_sale_id: Sale the goods were bought on
        items: [{line_id, quantity, condition}]
        reason: Customer's reason for the return
        refund_method: CASH, CARD, MOBILE_PAYMENT, STORE_CREDIT or ORIGINAL_PAYMENT
        operator_id: Operator processing the return
        restocking_fee_cents: Deducted from the refund (refund never goes below zero)

    Returns:
        {"return_sale", "refund_amount_cents", "gross_refund_cents",
         "restocking_fee_cents", "refund_method", "points_reversed", "store_credit"}

    Raises:
        NotFound, ValidationError, AlreadyVoided, ReturnWindowExpired,
        ReturnQuantityExceeded. Nothing is persisted when any of these is raised.
    """
    items_in = _normalize_return_items(items)
    reason = parse_text(reason, "reason", required=True)
    notes = parse_text(notes, "notes", max_length=NOTES_MAX_LENGTH)
    refund_method = parse_choice(refund_method, "refund_method", REFUND_METHODS)
    restocking_fee_cents = parse_cents(restocking_fee_cents, "restocking_fee_cents")

    def _op():
        operator = get_active_operator(operator_id)

        original = lock_for_update(Sale.query.filter_by(id=original_sale_id)).first()
        if original is None:
            raise NotFound("Original sale not found", details={"sale_id": original_sale_id})
        if original.is_return:
            raise ValidationError("Cannot return items from a return record", details={"sale_id": original.id})
        if original.status == SALE_STATUS_VOIDED:
            raise AlreadyVoided("Cannot return items from voided sale", details={"sale_id": original.id})

        policy_days = current_app.config.get("RETURN_POLICY_DAYS", 30)
        days_since = whole_days_between(original.created_at, utcnow())
        if days_since > policy_days:
            raise ReturnWindowExpired(
                f"Return period expired. Sales can only be returned within {policy_days} days",
                details={"days_since_sale": days_since, "policy_days": policy_days},
            )

        if refund_method == REFUND_STORE_CREDIT and original.customer_id is None:
            raise ValidationError("Store credit refunds require a customer on the original sale")

        original_lines = {line.id: line for line in original.lines}
        already = returned_so_far(original.id)

        requested: dict[int, int] = {}
        for item in items_in:
            if item["line_id"] not in original_lines:
                raise NotFound(
                    f"Sale item {item['line_id']} not found in original sale",
                    details={"line_id": item["line_id"], "sale_id": original.id},
                )
            requested[item["line_id"]] = requested.get(item["line_id"], 0) + item["quantity"]

        for line_id, quantity in requested.items():
            line = original_lines[line_id]
            returned = already.get(line_id, {}).get("quantity", 0)
            remaining = line.quantity - returned
            if quantity > remaining:
                raise ReturnQuantityExceeded(
                    f"Cannot return {quantity} of line {line_id}. Only {remaining} remaining",
                    details={
                        "line_id": line_id,
                        "sold": line.quantity,
                        "already_returned": returned,
                        "requested": quantity,
                    },
                )

        return_code = next_document_number(DOCUMENT_RETURN)

        gross_refund = 0
        return_lines = []
        # Running totals per original line, so the last unit picks up any rounding remainder
        running = {
            line_id: dict(already.get(line_id, {"quantity": 0, "discount_cents": 0}))
            for line_id in requested
        }
        for item in items_in:
            line = original_lines[item["line_id"]]
            quantity = item["quantity"]
            tally = running[line.id]

            if tally["quantity"] + quantity == line.quantity:
                line_discount = line.discount_cents - tally["discount_cents"]
            else:
                line_discount = prorate(line.discount_cents, quantity, line.quantity)
            tally["quantity"] += quantity
            tally["discount_cents"] += line_discount

            line_refund = line.unit_price_cents * quantity - line_discount
            gross_refund += line_refund

            product, variant = resolve_stock_item(line.product_id, line.variant_id)
            if item["condition"] in RESTOCKABLE_CONDITIONS:
                apply_movement(
                    product,
                    variant,
                    movement_type=MOVEMENT_RETURN,
                    quantity_delta=quantity,
                    reason=_movement_reason(item["condition"], reason),
                    reference=return_code,
                    operator_id=operator.id,
                )
            else:
                movement_common = dict(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    reference=return_code,
                    operator_id=operator.id,
                )
                record_movement(
                    movement_type=MOVEMENT_RETURN,
                    quantity_delta=quantity,
                    reason=_movement_reason(item["condition"], reason),
                    **movement_common,
                )
                record_movement(
                    movement_type=MOVEMENT_ADJUSTMENT,
                    quantity_delta=-quantity,
                    reason=f"Written off on return - {item['condition']}",
                    **movement_common,
                )

            return_lines.append(SaleLine(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=-quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line_discount,
                subtotal_cents=-line_refund,
                tax_cents=0,
                original_line_id=line.id,
                condition=item["condition"],
            ))

        fee_applied = min(restocking_fee_cents, gross_refund)
        final_refund = gross_refund - fee_applied
        resolved_method = original.payment_method if refund_method == REFUND_ORIGINAL_PAYMENT else refund_method

        note = f"Return for sale {original.receipt_code}. Reason: {reason}"
        if notes:
            note = f"{note}\n{notes}"

        # Amounts negated in full: subtotal + tax - discount == final still holds
        return_sale = Sale(
            receipt_code=return_code,
            operator_id=operator.id,
            customer_id=original.customer_id,
            subtotal_cents=-gross_refund,
            tax_cents=0,
            discount_cents=-fee_applied,
            loyalty_discount_cents=0,
            final_amount_cents=-final_refund,
            payment_method=resolved_method,
            payment_status=(
                PAYMENT_STATUS_PENDING if refund_method == REFUND_STORE_CREDIT else PAYMENT_STATUS_COMPLETED
            ),
            status=SALE_STATUS_ACTIVE,
            notes=note,
            original_sale_id=original.id,
            return_reason=reason,
            refund_method=refund_method,
            restocking_fee_cents=fee_applied,
        )
        db.session.add(return_sale)
        db.session.flush()

        for line in return_lines:
            line.sale_id = return_sale.id
            db.session.add(line)
        db.session.flush()

        points_reversed = 0
        store_credit = None
        if original.customer_id is not None:
            customer = None
            if original.points_earned > 0 and original.final_amount_cents > 0:
                points_reversed = original.points_earned * gross_refund // original.final_amount_cents
                if points_reversed > 0:
                    customer = lock_customer(original.customer_id)
                    reverse_points_for_return(customer, original, points_reversed, return_code)

            if refund_method == REFUND_STORE_CREDIT and final_refund > 0:
                customer = customer or lock_customer(original.customer_id)
                store_credit = issue_store_credit(
                    customer,
                    final_refund,
                    f"Store credit from return {return_code}",
                    source_sale_id=return_sale.id,
                )

        fully_returned = all(
            running.get(line_id, already.get(line_id, {"quantity": 0}))["quantity"] >= line.quantity
            for line_id, line in original_lines.items()
        )
        original.payment_status = PAYMENT_STATUS_REFUNDED if fully_returned else PAYMENT_STATUS_PARTIALLY_REFUNDED
        annotation = f"Return processed: {return_code}"
        original.notes = f"{original.notes}\n{annotation}" if original.notes else annotation
        db.session.flush()

        return {
            "return_sale": return_sale,
            "refund_amount_cents": final_refund,
            "gross_refund_cents": gross_refund,
            "restocking_fee_cents": fee_applied,
            "refund_method": resolved_method,
            "points_reversed": points_reversed,
            "store_credit": store_credit,
        }

    result = run_in_transaction(_op)
    return_sale = result["return_sale"]

    restocked = []
    for line in return_sale.lines:
        key = (line.product_id, line.variant_id)
        if line.condition in RESTOCKABLE_CONDITIONS and key not in restocked:
            restocked.append(key)
    for product_id, variant_id in restocked:
        best_effort(
            f"stock alerts for product {product_id}",
            evaluate_stock_alerts,
            product_id,
            variant_id,
        )

    best_effort(
        f"audit for return {return_sale.id}",
        append_audit_event,
        action=ACTION_PROCESS_RETURN,
        entity_type="sale",
        entity_id=return_sale.id,
        operator_id=operator_id,
        details={
            "receipt_code": return_sale.receipt_code,
            "original_sale_id": original_sale_id,
            "refund_amount_cents": result["refund_amount_cents"],
            "refund_method": result["refund_method"],
        },
    )
    current_app.logger.info(
        "Return %s processed against sale %s: refund %s cents",
        return_sale.receipt_code,
        original_sale_id,
        result["refund_amount_cents"],
    )
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_return_history(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Sale not found", details={"sale_id": sale_id})

    returns = Sale.query.filter_by(original_sale_id=sale.id).order_by(Sale.id).all()
    returned = returned_so_far(sale.id)
    return {
        "sale_id": sale.id,
        "receipt_code": sale.receipt_code,
        "total_returns": len(returns),
        "total_refunded_cents": sum(-r.final_amount_cents for r in returns),
        "returned_quantities": {str(line_id): data["quantity"] for line_id, data in returned.items()},
        "returns": [
            {
                **r.to_dict(),
                "lines": [line.to_dict() for line in r.lines],
            }
            for r in returns
        ],
    }
