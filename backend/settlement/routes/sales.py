# Overview: Flask API routes for checkout, returns and voids; parses input and returns JSON responses.

# backend/settlement/routes/sales.py
"""
Sale Settlement API Routes

DESIGN:
- Checkout posts a complete sale in one request
- Returns are recorded against an existing sale
- Voids reverse a sale without deleting it
- Service errors carry their own HTTP status and error code
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import return_service, sales_service
from ..services.errors import SaleError
from ..decorators import require_operator


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _error_response(e: SaleError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# CHECKOUT
# =============================================================================

@sales_bp.post("/")
@require_operator
def checkout_route():
    """
    Complete a sale.

    Request body:
    {
        "customer_id": 7,  (optional)
        "items": [{"product_id": 1, "variant_id": null, "quantity": 2,
                   "unit_price_cents": 1299, "discount_cents": 0}],
        "payment_method": "MIXED",
        "payment_splits": [{"payment_method": "CASH", "amount_cents": 1000},
                           {"payment_method": "CARD", "amount_cents": 1812}],
        "cash_received_cents": 2000,  (CASH only)
        "discount_cents": 0,
        "loyalty_discount_cents": 0,
        "points_redeemed": 0,
        "discount_reason": null,
        "notes": null
    }

    Returns:
        201: Sale created
        400: Invalid input or payment split mismatch
        404: Product, variant or customer not found
        409: Insufficient stock or points
    """
    try:
        data = request.get_json(silent=True) or {}

        sale = sales_service.checkout(
            operator_id=g.current_operator.id,
            customer_id=data.get("customer_id"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            payment_splits=data.get("payment_splits"),
            cash_received_cents=data.get("cash_received_cents"),
            discount_cents=data.get("discount_cents", 0),
            loyalty_discount_cents=data.get("loyalty_discount_cents", 0),
            points_redeemed=data.get("points_redeemed", 0),
            discount_reason=data.get("discount_reason"),
            notes=data.get("notes"),
        )

        return jsonify(sales_service.get_sale_detail(sale.id)), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_operator
def get_sale_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale_detail(sale_id)), 200
    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURNS
# =============================================================================

@sales_bp.post("/<int:sale_id>/returns")
@require_operator
def process_return_route(sale_id: int):
    """
    Record a return against a sale.

    Request body:
    {
        "items": [{"line_id": 12, "quantity": 1, "condition": "NEW"}],
        "reason": "Wrong size",
        "refund_method": "ORIGINAL_PAYMENT",
        "restocking_fee_cents": 0,  (optional)
        "notes": null  (optional)
    }

    Returns:
        201: Return recorded
        400: Invalid input or return window expired
        404: Sale or line not found
        409: Quantity exceeds what remains, or sale voided
    """
    try:
        data = request.get_json(silent=True) or {}

        result = return_service.process_return(
            original_sale_id=sale_id,
            items=data.get("items"),
            reason=data.get("reason"),
            refund_method=data.get("refund_method"),
            restocking_fee_cents=data.get("restocking_fee_cents", 0),
            operator_id=g.current_operator.id,
            notes=data.get("notes"),
        )

        return_sale = result["return_sale"]
        return jsonify({
            "return_sale": return_sale.to_dict(),
            "lines": [line.to_dict() for line in return_sale.lines],
            "refund_amount_cents": result["refund_amount_cents"],
            "gross_refund_cents": result["gross_refund_cents"],
            "restocking_fee_cents": result["restocking_fee_cents"],
            "refund_method": result["refund_method"],
            "points_reversed": result["points_reversed"],
            "store_credit": result["store_credit"].to_dict() if result["store_credit"] else None,
        }), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/returns")
@require_operator
def return_history_route(sale_id: int):
    try:
        return jsonify(return_service.get_return_history(sale_id)), 200
    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load return history")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VOID
# =============================================================================

@sales_bp.post("/<int:sale_id>/void")
@require_operator
def void_sale_route(sale_id: int):
    """
    Void a sale.

    Only ACTIVE sales with no returns recorded against them can be voided.
    Once a return exists, undo the rest of the sale with further returns.
    Return records themselves cannot be voided.

    Request body:
    {
        "reason": "Rung up twice",
        "restore_stock": true,  (optional, default true)
        "password": "..."  (required when the store demands password confirmation)
    }

    Returns:
        200: Sale voided
        400: Sale is a return, or has returns recorded
        403: Not allowed to void this sale, or bad password
        409: Already voided
    """
    try:
        data = request.get_json(silent=True) or {}
        restore_stock = data.get("restore_stock", True)
        if not isinstance(restore_stock, bool):
            return jsonify({"error": "restore_stock must be a boolean", "code": "VALIDATION_ERROR", "details": {}}), 400

        result = sales_service.void_sale(
            sale_id=sale_id,
            operator_id=g.current_operator.id,
            reason=data.get("reason"),
            restore_stock=restore_stock,
            password=data.get("password"),
        )

        return jsonify({
            "sale": result["sale"].to_dict(),
            "loyalty": result["loyalty"],
            "restocked": result["restocked"],
        }), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500
