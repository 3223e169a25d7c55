# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


def next_document_number(
    *,
    location_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a location/type.

    Runs inside the caller's unit of work: the UPDATE takes the row lock on
    (location_id, document_type), so concurrent allocations serialize and
    numbers are strictly increasing per location. If the caller rolls back,
    the number is released with it.

    Format: "<prefix>-<location:03d>-<n:0{pad}d>", e.g. "S-001-000042".
    """
    if not location_id:
        raise ValidationError("location_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.location_id == location_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(location_id=location_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        # First document of this type at the location. A concurrent first
        # insert loses on the unique constraint (TransientStoreError).
        seq = DocumentSequence(location_id=location_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{location_id:03d}-{next_num:0{pad}d}"
