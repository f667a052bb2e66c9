from __future__ import annotations

from ..extensions import db
from settlement.time_utils import to_utc_z, utcnow


ROLE_CASHIER = "CASHIER"
ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"

ELEVATED_ROLES = frozenset({ROLE_MANAGER, ROLE_ADMIN})


class Operator(db.Model):
    """
    Register operator as seen by the settlement engine.

    Login and session handling belong to the upstream auth service; this row
    only carries what the engine needs: role for void authorization and a
    bcrypt hash for optional password confirmation.
    """
    __tablename__ = "operators"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_operators_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)
    password_hash = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
