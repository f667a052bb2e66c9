# Overview: Operator identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Operator


OPERATOR_HEADER = "X-Operator-Id"


def _is_identified() -> bool:
    return hasattr(g, 'current_operator')


def require_operator(f):
    """
    Resolve the operator making the request.

    Authentication happens upstream; the caller forwards the operator id in
    the X-Operator-Id header. Sets g.current_operator.

    Returns 401 if:
    - Header missing or not an integer
    - Operator unknown
    - Operator deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(OPERATOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Operator identification required", "code": "UNAUTHENTICATED"}), 401

        operator = db.session.get(Operator, int(raw))
        if operator is None or not operator.is_active:
            return jsonify({"error": "Unknown or inactive operator", "code": "UNAUTHENTICATED"}), 401

        g.current_operator = operator
        return f(*args, **kwargs)

    return decorated_function


def require_elevated_role(f):
    """Require a manager or admin. Must be stacked under @require_operator."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_identified():
            return jsonify({"error": "Operator identification required", "code": "UNAUTHENTICATED"}), 401
        if not g.current_operator.is_elevated:
            return jsonify({
                "error": "Permission denied",
                "code": "UNAUTHORIZED",
                "details": {"role": g.current_operator.role},
            }), 403
        return f(*args, **kwargs)
    return decorated_function
