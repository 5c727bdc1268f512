# Overview: Organization-scoped document numbering (sales, invoices, POs, receipts, returns, expenses).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, SerializationConflictError, ValidationError
from ..extensions import db
from ..models import DocumentSequence, Organization
from .concurrency import run_in_transaction


# document_type -> (default prefix, include org short code, pad)
DOCUMENT_FORMATS = {
    "SALE": ("SAL", True, 6),
    "INVOICE": ("INV", False, 6),
    "PURCHASE_ORDER": ("PO", True, 6),
    "RECEIPT": ("RCV", True, 6),
    "RETURN": ("RET", True, 6),
    "EXPENSE": ("EXP", True, 6),
    "TRANSFER": ("TRF", True, 6),
}


def format_document_number(document_type: str, number: int, *, org_code: str, prefix: str | None = None) -> str:
    """
    Invoices: {prefix}-{000123}, prefix configurable per organization.
    Everything else: {PREFIX}-{ORG3}-{000123}.
    """
    default_prefix, with_org, pad = DOCUMENT_FORMATS[document_type]
    head = prefix or default_prefix
    if with_org:
        return f"{head}-{org_code}-{number:0{pad}d}"
    return f"{head}-{number:0{pad}d}"


def _reserve(org_id: int, document_type: str) -> tuple[int, str | None]:
    """
    Reserve the next value of the (org, type) counter.

    The counter row's UPDATE takes its write lock, so concurrent creators
    queue behind each other and each reads back its own increment. A lost
    race on the very first insert surfaces as SerializationConflictError and
    the retried unit of work takes the UPDATE path.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        seq = (
            db.session.query(DocumentSequence)
            .filter_by(org_id=org_id, document_type=document_type)
            .populate_existing()
            .one()
        )
        return seq.next_number - 1, seq.prefix

    seq = DocumentSequence(org_id=org_id, document_type=document_type, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise SerializationConflictError(
            "Document sequence was created concurrently", {"document_type": document_type}
        ) from exc
    return 1, None


def next_document_number(*, org_id: int, document_type: str) -> str:
    """
    Atomically allocate the next document number for an organization/type.

    Runs inside the caller's unit of work when there is one, so the number is
    consumed only if the document that uses it commits.
    """
    if document_type not in DOCUMENT_FORMATS:
        raise ValidationError(f"Unknown document type: {document_type}")

    def _op() -> str:
        org = db.session.get(Organization, org_id)
        if org is None:
            raise NotFoundError("Organization not found", {"org_id": org_id})
        number, prefix = _reserve(org_id, document_type)
        return format_document_number(document_type, number, org_code=org.short_code, prefix=prefix)

    return run_in_transaction(_op)


def configure_invoice_numbering(*, org_id: int, prefix: str | None = None, next_number: int | None = None) -> DocumentSequence:
    """
    Set the organization's invoice prefix and/or next number.

    Lowering next_number below an issued number would reissue it, so the
    counter only moves forward.
    """
    if prefix is not None:
        prefix = prefix.strip().upper()
        if not prefix or len(prefix) > 16 or not prefix.replace("-", "").isalnum():
            raise ValidationError("Invoice prefix must be 1-16 letters/digits")
    if next_number is not None and (isinstance(next_number, bool) or not isinstance(next_number, int) or next_number < 1):
        raise ValidationError("next_number must be a positive integer")

    def _op() -> DocumentSequence:
        if db.session.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found", {"org_id": org_id})
        seq = (
            db.session.query(DocumentSequence)
            .filter_by(org_id=org_id, document_type="INVOICE")
            .first()
        )
        if seq is None:
            seq = DocumentSequence(org_id=org_id, document_type="INVOICE", next_number=1)
            db.session.add(seq)
        if next_number is not None:
            if next_number < seq.next_number:
                raise ValidationError(
                    "next_number cannot move backwards",
                    {"current_next_number": seq.next_number},
                )
            seq.next_number = next_number
        if prefix is not None:
            seq.prefix = prefix
        db.session.flush()
        return seq

    return run_in_transaction(_op)
