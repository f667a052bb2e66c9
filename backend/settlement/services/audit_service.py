# Overview: Append-only audit records for settlement actions.

from __future__ import annotations

import json

from ..extensions import db
from ..models import AuditLog


ACTION_CREATE_SALE = "CREATE_SALE"
ACTION_PROCESS_RETURN = "PROCESS_RETURN"
ACTION_VOID_SALE = "VOID_SALE"


def append_audit_event(
    *,
    action: str,
    entity_type: str,
    entity_id: int,
    operator_id: int | None = None,
    details: dict | None = None,
) -> AuditLog:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - No commit; post-commit callers go through concurrency.best_effort.
    """
    entry = AuditLog(
        operator_id=operator_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details, sort_keys=True) if details is not None else None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_events(entity_type: str, entity_id: int) -> list[AuditLog]:
    return AuditLog.query.filter_by(
        entity_type=entity_type,
        entity_id=entity_id,
    ).order_by(AuditLog.id).all()
