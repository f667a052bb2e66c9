# Overview: Flask API routes for loyalty tiers, balances and redemptions.

# backend/settlement/routes/loyalty.py
"""Loyalty API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..services import loyalty_service
from ..services.errors import SaleError
from ..decorators import require_operator, require_elevated_role
from ..validation import parse_cents, parse_choice, parse_int, parse_text


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


def _error_response(e: SaleError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# TIERS
# =============================================================================

@loyalty_bp.get("/tiers")
@require_operator
def list_tiers_route():
    try:
        return jsonify({"tiers": loyalty_service.get_tier_table()}), 200
    except Exception:
        current_app.logger.exception("Failed to list loyalty tiers")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.put("/tiers/<string:tier>")
@require_operator
@require_elevated_role
def upsert_tier_route(tier: str):
    """
    Create or update a tier row. Manager or admin only.

    Request body:
    {"minimum_points": 500, "points_multiplier_bps": 12500,
     "discount_percentage": 5, "birthday_bonus": 100, "description": "Silver"}
    """
    try:
        data = request.get_json(silent=True) or {}

        row = loyalty_service.upsert_tier_config(
            parse_choice(tier.upper(), "tier", loyalty_service.TIER_ORDER),
            minimum_points=parse_int(data.get("minimum_points"), "minimum_points", minimum=0),
            points_multiplier_bps=parse_int(data.get("points_multiplier_bps"), "points_multiplier_bps", minimum=10000),
            discount_percentage=parse_int(data.get("discount_percentage"), "discount_percentage", required=False, minimum=0, maximum=100, default=0),
            birthday_bonus=parse_int(data.get("birthday_bonus"), "birthday_bonus", required=False, minimum=0, default=0),
            description=parse_text(data.get("description"), "description"),
        )
        current_app.logger.info("Loyalty tier %s updated", row.tier)
        return jsonify({"tier": row.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update loyalty tier")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CUSTOMERS
# =============================================================================

@loyalty_bp.get("/customers/<int:customer_id>")
@require_operator
def loyalty_status_route(customer_id: int):
    try:
        return jsonify(loyalty_service.get_loyalty_status(customer_id)), 200
    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load loyalty status")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/customers/<int:customer_id>/transactions")
@require_operator
def points_history_route(customer_id: int):
    try:
        limit = parse_int(request.args.get("limit"), "limit", required=False, minimum=1, maximum=500, default=100)
        transactions = loyalty_service.list_points_transactions(customer_id, limit=limit)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load points history")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.post("/customers/<int:customer_id>/redeem")
@require_operator
def redeem_route(customer_id: int):
    """
    Spend points on a reward.

    Request body:
    {"points": 200, "reward_type": "DISCOUNT_FIXED", "reward_value_cents": 500, "description": null}
    """
    try:
        data = request.get_json(silent=True) or {}

        result = loyalty_service.redeem_points(
            customer_id=customer_id,
            points=parse_int(data.get("points"), "points", minimum=1),
            reward_type=parse_choice(data.get("reward_type"), "reward_type", loyalty_service.VALID_REWARD_TYPES),
            reward_value_cents=parse_cents(data.get("reward_value_cents"), "reward_value_cents", required=True),
            description=parse_text(data.get("description"), "description"),
        )
        return jsonify({
            "reward": result["reward"].to_dict(),
            "balance": result["balance"],
        }), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return jsonify({"error": "Internal server error"}), 500
