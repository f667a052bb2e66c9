# Overview: Stock ledger operations; every stock change goes through here.

# backend/settlement/services/inventory_service.py

from __future__ import annotations

import uuid

from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, ProductVariant, StockMovement
from .concurrency import run_in_transaction, best_effort
from .errors import InsufficientStock, NotFound, ValidationError
"""
Stock Ledger Invariants (authoritative)

- stock_movements is append-only: no updates, no deletes.
- For every product (variant_id NULL) and every variant:
      stock_quantity == SUM(quantity_delta)
  Products and variants start at zero; stock arrives through PURCHASE.
- Each stock change writes its column update and its movement in the same
  transaction. Decrements are conditional (WHERE stock_quantity >= qty), so
  two concurrent writers can never drive stock below zero.
- A TRANSFER is an out/in pair with the same reference; net zero.
- A non-restockable return is a RETURN/ADJUSTMENT pair; net zero.
"""


MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_PURCHASE = "PURCHASE"

MOVEMENT_TYPES = [
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_PURCHASE,
]


def resolve_stock_item(
    product_id: int,
    variant_id: int | None = None,
    *,
    require_active: bool = False,
) -> tuple[Product, ProductVariant | None]:
    """Load a product (and optional variant) or raise NotFound."""
    product = db.session.get(Product, product_id)
    if product is None or (require_active and not product.is_active):
        raise NotFound(
            f"Product with ID {product_id} not found or inactive",
            details={"product_id": product_id},
        )

    variant = None
    if variant_id is not None:
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None or (require_active and not variant.is_active):
            raise NotFound(
                f"Product variant with ID {variant_id} not found or inactive",
                details={"variant_id": variant_id},
            )
        if variant.product_id != product.id:
            raise ValidationError(
                f"Variant {variant_id} does not belong to product {product_id}",
                details={"product_id": product_id, "variant_id": variant_id},
            )
    return product, variant


def _stock_row(product: Product, variant: ProductVariant | None):
    return variant if variant is not None else product


def change_stock(product: Product, variant: ProductVariant | None, delta: int) -> bool:
    """
    Apply delta to the stock column with a compare-and-set update.

    Returns False (and changes nothing) when a decrement would take stock
    below zero. Does not write a movement; see apply_movement.
    """
    row = _stock_row(product, variant)
    model = type(row)

    stmt = update(model).where(model.id == row.id)
    if delta < 0:
        stmt = stmt.where(model.stock_quantity >= -delta)
    stmt = stmt.values(stock_quantity=model.stock_quantity + delta).execution_options(
        synchronize_session=False
    )
    result = db.session.execute(stmt)
    db.session.expire(row, ["stock_quantity"])
    return result.rowcount == 1


def record_movement(
    *,
    product_id: int,
    variant_id: int | None,
    movement_type: str,
    quantity_delta: int,
    reason: str | None = None,
    reference: str | None = None,
    operator_id: int | None = None,
    from_location: str | None = None,
    to_location: str | None = None,
) -> StockMovement:
    """Append one ledger row. No stock column change, no commit."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    movement = StockMovement(
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        reason=reason,
        reference=reference,
        operator_id=operator_id,
        from_location=from_location,
        to_location=to_location,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def apply_movement(
    product: Product,
    variant: ProductVariant | None,
    *,
    movement_type: str,
    quantity_delta: int,
    reason: str | None = None,
    reference: str | None = None,
    operator_id: int | None = None,
) -> StockMovement:
    """
    Change stock and append the matching ledger row (inside the caller's transaction).

    Raises InsufficientStock when a decrement exceeds what is on hand.
    """
    if not change_stock(product, variant, quantity_delta):
        row = _stock_row(product, variant)
        name = variant.display_name if variant is not None else product.name
        available = row.stock_quantity
        raise InsufficientStock(
            f"Insufficient stock for {name}. Available: {available}, Requested: {-quantity_delta}",
            details={
                "product_id": product.id,
                "variant_id": variant.id if variant is not None else None,
                "available": available,
                "requested": -quantity_delta,
            },
        )

    return record_movement(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        reason=reason,
        reference=reference,
        operator_id=operator_id,
    )


# =============================================================================
# STANDALONE LEDGER OPERATIONS
# =============================================================================

def receive_stock(
    *,
    product_id: int,
    quantity: int,
    variant_id: int | None = None,
    operator_id: int | None = None,
    reason: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """Goods received from a supplier: one PURCHASE movement."""
    if quantity <= 0:
        raise ValidationError("Received quantity must be positive")

    def _op():
        product, variant = resolve_stock_item(product_id, variant_id)
        return apply_movement(
            product,
            variant,
            movement_type=MOVEMENT_PURCHASE,
            quantity_delta=quantity,
            reason=reason or "Stock received",
            reference=reference,
            operator_id=operator_id,
        )

    movement = run_in_transaction(_op)
    _after_stock_change(movement.product_id, movement.variant_id)
    return movement


def adjust_stock(
    *,
    product_id: int,
    quantity_delta: int,
    variant_id: int | None = None,
    operator_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """Manual correction. A negative adjustment may not take stock below zero."""
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")

    def _op():
        product, variant = resolve_stock_item(product_id, variant_id)
        return apply_movement(
            product,
            variant,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity_delta=quantity_delta,
            reason=reason or "Manual stock adjustment",
            operator_id=operator_id,
        )

    movement = run_in_transaction(_op)
    _after_stock_change(movement.product_id, movement.variant_id)
    return movement


def transfer_stock(
    *,
    product_id: int,
    quantity: int,
    from_location: str,
    to_location: str,
    variant_id: int | None = None,
    operator_id: int | None = None,
    notes: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between locations: an out row and an in row sharing a reference.

    On-hand is tracked per product, not per location, so the pair nets to
    zero and the stock column is untouched; the source must still hold the
    quantity being moved.
    """
    if quantity <= 0:
        raise ValidationError("Transfer quantity must be positive")
    if not from_location or not to_location or from_location == to_location:
        raise ValidationError("Transfer needs two different locations")

    transfer_ref = f"TR-{uuid.uuid4().hex[:10].upper()}"

    def _op():
        product, variant = resolve_stock_item(product_id, variant_id)
        row = _stock_row(product, variant)
        if row.stock_quantity < quantity:
            raise InsufficientStock(
                f"Cannot transfer {quantity}; only {row.stock_quantity} on hand",
                details={"available": row.stock_quantity, "requested": quantity},
            )

        common = dict(
            product_id=product.id,
            variant_id=variant.id if variant is not None else None,
            movement_type=MOVEMENT_TRANSFER,
            reference=transfer_ref,
            operator_id=operator_id,
            from_location=from_location,
            to_location=to_location,
        )
        out_movement = record_movement(
            quantity_delta=-quantity,
            reason=notes or f"Transfer to {to_location}",
            **common,
        )
        in_movement = record_movement(
            quantity_delta=quantity,
            reason=notes or f"Transfer from {from_location}",
            **common,
        )
        return out_movement, in_movement

    return run_in_transaction(_op)


def _after_stock_change(product_id: int, variant_id: int | None) -> None:
    from .alert_service import evaluate_stock_alerts

    best_effort(
        f"stock alerts for product {product_id}",
        evaluate_stock_alerts,
        product_id,
        variant_id,
    )


# =============================================================================
# QUERIES
# =============================================================================

def get_ledger_quantity(product_id: int, variant_id: int | None = None) -> int:
    """On-hand quantity derived from the ledger alone."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(StockMovement.product_id == product_id)
    if variant_id is None:
        q = q.filter(StockMovement.variant_id.is_(None))
    else:
        q = q.filter(StockMovement.variant_id == variant_id)
    return int(q.scalar() or 0)


def list_movements(
    *,
    product_id: int,
    variant_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    resolve_stock_item(product_id, variant_id)

    q = StockMovement.query.filter_by(product_id=product_id)
    if variant_id is not None:
        q = q.filter_by(variant_id=variant_id)
    if movement_type:
        q = q.filter_by(movement_type=movement_type)

    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()


def get_stock_summary(product_id: int, variant_id: int | None = None) -> dict:
    product, variant = resolve_stock_item(product_id, variant_id)
    row = _stock_row(product, variant)
    ledger_quantity = get_ledger_quantity(product_id, variant_id)
    return {
        "product_id": product.id,
        "variant_id": variant.id if variant is not None else None,
        "stock_quantity": row.stock_quantity,
        "ledger_quantity": ledger_quantity,
        "in_sync": row.stock_quantity == ledger_quantity,
    }


def reconcile_stock() -> list[dict]:
    """Every product/variant whose stock column disagrees with its ledger sum."""
    mismatches = []
    for product in Product.query.order_by(Product.id).all():
        ledger_quantity = get_ledger_quantity(product.id)
        if ledger_quantity != product.stock_quantity:
            mismatches.append({
                "product_id": product.id,
                "variant_id": None,
                "stock_quantity": product.stock_quantity,
                "ledger_quantity": ledger_quantity,
            })
    for variant in ProductVariant.query.order_by(ProductVariant.id).all():
        ledger_quantity = get_ledger_quantity(variant.product_id, variant.id)
        if ledger_quantity != variant.stock_quantity:
            mismatches.append({
                "product_id": variant.product_id,
                "variant_id": variant.id,
                "stock_quantity": variant.stock_quantity,
                "ledger_quantity": ledger_quantity,
            })
    return mismatches
