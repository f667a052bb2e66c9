"""
Operator lookup and credential checks.

Authentication itself (login, sessions, tokens) belongs to the upstream
auth service. The settlement engine only needs to resolve the operator id
it is handed, know whether that operator holds an elevated role, and
optionally re-check a password before a void.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- bcrypt.checkpw() is timing-safe
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Operator
from ..models.operators import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from .errors import NotFound, Unauthorized, ValidationError


VALID_ROLES = [ROLE_CASHIER, ROLE_MANAGER, ROLE_ADMIN]


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password using bcrypt."""
    if not password:
        raise ValidationError("Password must not be empty")
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str | None) -> bool:
    """Returns True if password matches hash, False otherwise."""
    if not isinstance(password, str) or not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_operator(username: str, role: str = ROLE_CASHIER, password: str | None = None, rounds: int = 12) -> Operator:
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}")
    operator = Operator(
        username=username,
        role=role,
        password_hash=hash_password(password, rounds=rounds) if password else None,
    )
    db.session.add(operator)
    db.session.commit()
    return operator


def get_active_operator(operator_id: int) -> Operator:
    operator = db.session.get(Operator, operator_id)
    if operator is None or not operator.is_active:
        raise NotFound(f"Operator {operator_id} not found or inactive", details={"operator_id": operator_id})
    return operator


def confirm_void_password(operator: Operator, password: str | None) -> None:
    """
    Re-check the operator's password before a void when the store requires it.

    Raises Unauthorized when the setting is on and the password is missing
    or wrong.
    """
    if not current_app.config.get("REQUIRE_PASSWORD_ON_VOID", False):
        return
    if not verify_password(password, operator.password_hash):
        raise Unauthorized("Invalid password", details={"operator_id": operator.id})
