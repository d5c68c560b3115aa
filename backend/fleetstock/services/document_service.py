# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import document_period


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 3,
) -> str:
    """
    Allocate the next document number for a type within the current year,
    e.g. TRF-2026-001.

    Must run inside the caller's transaction (run_atomic). A racing first
    insert for the same (type, year) raises IntegrityError, which the caller's
    retry policy turns into a clean re-run.
    """
    period = document_period()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, period=period)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(document_type=document_type, period=period, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{period}-{next_num:0{pad}d}"
