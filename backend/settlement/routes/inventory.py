# Overview: Flask API routes for stock ledger operations; parses input and returns JSON responses.

# backend/settlement/routes/inventory.py
"""Stock receive/adjust/transfer and ledger queries"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import inventory_service
from ..services.errors import SaleError
from ..decorators import require_operator, require_elevated_role
from ..validation import MAX_QUANTITY, parse_choice, parse_int, parse_text


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _error_response(e: SaleError):
    return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/receive")
@require_operator
def receive_route():
    """
    Receive stock from a supplier (PURCHASE movement).

    Request body:
    {"product_id": 1, "variant_id": null, "quantity": 24, "reason": "PO 118", "reference": "PO-118"}
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = inventory_service.receive_stock(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            variant_id=parse_int(data.get("variant_id"), "variant_id", required=False, minimum=1),
            quantity=parse_int(data.get("quantity"), "quantity", minimum=1, maximum=MAX_QUANTITY),
            reason=parse_text(data.get("reason"), "reason"),
            reference=parse_text(data.get("reference"), "reference", max_length=64),
            operator_id=g.current_operator.id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@require_operator
@require_elevated_role
def adjust_route():
    """
    Manual stock correction (ADJUSTMENT movement). Manager or admin only.

    Request body:
    {"product_id": 1, "variant_id": null, "quantity_delta": -2, "reason": "Shrinkage"}
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = inventory_service.adjust_stock(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            variant_id=parse_int(data.get("variant_id"), "variant_id", required=False, minimum=1),
            quantity_delta=parse_int(
                data.get("quantity_delta"), "quantity_delta", minimum=-MAX_QUANTITY, maximum=MAX_QUANTITY
            ),
            reason=parse_text(data.get("reason"), "reason", required=True),
            operator_id=g.current_operator.id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfer")
@require_operator
def transfer_route():
    """
    Move stock between locations (paired TRANSFER movements).

    Request body:
    {"product_id": 1, "quantity": 5, "from_location": "BACKROOM", "to_location": "FLOOR"}
    """
    try:
        data = request.get_json(silent=True) or {}

        out_movement, in_movement = inventory_service.transfer_stock(
            product_id=parse_int(data.get("product_id"), "product_id", minimum=1),
            variant_id=parse_int(data.get("variant_id"), "variant_id", required=False, minimum=1),
            quantity=parse_int(data.get("quantity"), "quantity", minimum=1, maximum=MAX_QUANTITY),
            from_location=parse_text(data.get("from_location"), "from_location", required=True, max_length=64),
            to_location=parse_text(data.get("to_location"), "to_location", required=True, max_length=64),
            notes=parse_text(data.get("notes"), "notes"),
            operator_id=g.current_operator.id,
        )
        return jsonify({
            "reference": out_movement.reference,
            "movements": [out_movement.to_dict(), in_movement.to_dict()],
        }), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/movements")
@require_operator
def movements_route(product_id: int):
    """Ledger rows for a product, newest first. Query: variant_id, movement_type, limit."""
    try:
        variant_id = parse_int(request.args.get("variant_id"), "variant_id", required=False, minimum=1)
        movement_type = parse_choice(
            request.args.get("movement_type"),
            "movement_type",
            inventory_service.MOVEMENT_TYPES,
            required=False,
        )
        limit = parse_int(request.args.get("limit"), "limit", required=False, minimum=1, maximum=1000, default=200)

        movements = inventory_service.list_movements(
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type,
            limit=limit,
        )
        return jsonify({
            "summary": inventory_service.get_stock_summary(product_id, variant_id),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/reconcile")
@require_operator
def reconcile_product_route(product_id: int):
    """Stock column against ledger sum for one product or variant."""
    try:
        variant_id = parse_int(request.args.get("variant_id"), "variant_id", required=False, minimum=1)
        summary = inventory_service.get_stock_summary(product_id, variant_id)
        if not summary["in_sync"]:
            current_app.logger.warning(
                "Stock for product %s (variant %s) disagrees with ledger: %s vs %s",
                product_id, variant_id, summary["stock_quantity"], summary["ledger_quantity"],
            )
        return jsonify(summary), 200
    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile product stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reconcile")
@require_operator
def reconcile_route():
    """Products and variants whose stock column disagrees with the ledger."""
    try:
        mismatches = inventory_service.reconcile_stock()
        if mismatches:
            current_app.logger.warning("Stock reconciliation found %s mismatches", len(mismatches))
        return jsonify({"in_sync": not mismatches, "mismatches": mismatches}), 200
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500
