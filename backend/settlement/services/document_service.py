# Overview: Receipt code allocation from the document sequence table.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


DOCUMENT_SALE = "SALE"
DOCUMENT_RETURN = "RETURN"

PREFIXES = {
    DOCUMENT_SALE: "S",
    DOCUMENT_RETURN: "RET",
}


def next_document_number(document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next receipt code for a document type.

    Must run inside the caller's unit of work: the UPDATE takes the row
    lock, so two concurrent checkouts can never draw the same number, and a
    rolled-back checkout gives its number back.
    """
    prefix = PREFIXES[document_type]

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{str(number).zfill(pad)}"
