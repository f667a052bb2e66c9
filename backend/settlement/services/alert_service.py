# Overview: Stock alert evaluation, run after stock-changing transactions commit.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, ProductVariant, StockAlert


ALERT_LOW_STOCK = "LOW_STOCK"
ALERT_HIGH_STOCK = "HIGH_STOCK"


def _open_alert(product_id: int, variant_id: int | None, alert_type: str) -> StockAlert | None:
    return StockAlert.query.filter_by(
        product_id=product_id,
        variant_id=variant_id,
        alert_type=alert_type,
        is_resolved=False,
    ).first()


def evaluate_stock_alerts(product_id: int, variant_id: int | None = None) -> list[StockAlert]:
    """
    Raise or resolve LOW_STOCK / HIGH_STOCK alerts for one product or variant.

    Does not commit; callers wrap this in concurrency.best_effort so that a
    failure here never reaches the sale that triggered it.
    """
    if variant_id is not None:
        item = db.session.get(ProductVariant, variant_id)
        name = item.display_name if item is not None else None
    else:
        item = db.session.get(Product, product_id)
        name = item.name if item is not None else None
    if item is None:
        return []

    created = []
    stock = item.stock_quantity

    low_threshold = item.low_stock_threshold
    if low_threshold is None:
        low_threshold = current_app.config.get("LOW_STOCK_THRESHOLD")

    if low_threshold is not None:
        existing = _open_alert(product_id, variant_id, ALERT_LOW_STOCK)
        if stock <= low_threshold:
            if existing is None:
                alert = StockAlert(
                    product_id=product_id,
                    variant_id=variant_id,
                    alert_type=ALERT_LOW_STOCK,
                    stock_quantity=stock,
                    threshold=low_threshold,
                    message=f"Stock for {name} is low ({stock} left)",
                )
                db.session.add(alert)
                created.append(alert)
        elif existing is not None:
            existing.is_resolved = True

    high_threshold = current_app.config.get("HIGH_STOCK_THRESHOLD")
    if high_threshold is not None:
        existing = _open_alert(product_id, variant_id, ALERT_HIGH_STOCK)
        if stock >= high_threshold:
            if existing is None:
                alert = StockAlert(
                    product_id=product_id,
                    variant_id=variant_id,
                    alert_type=ALERT_HIGH_STOCK,
                    stock_quantity=stock,
                    threshold=high_threshold,
                    message=f"Stock for {name} is high ({stock} units)",
                )
                db.session.add(alert)
                created.append(alert)
        elif existing is not None:
            existing.is_resolved = True

    db.session.flush()
    return created
