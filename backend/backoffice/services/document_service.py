# Overview: Per-company document number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence


def _bump(company_id: int, document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.company_id == company_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(company_id=company_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    company_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a company/type, e.g. "PC-000001".

    Runs inside the caller's transaction: the UPDATE takes a row lock on
    the sequence, so the number is only consumed if the caller commits.
    """
    if not company_id:
        raise ValidationError("company_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    next_num = _bump(company_id, document_type)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(company_id=company_id, document_type=document_type, next_number=2)
                )
            next_num = 1
        except IntegrityError:
            # Another transaction created the sequence first
            next_num = _bump(company_id, document_type)
            if next_num is None:
                raise

    return f"{prefix}-{next_num:0{pad}d}"
