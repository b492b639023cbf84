"""
Invoice / payment sink used by the milestone ledger.

The ledger only needs a narrow slice of invoicing: create an invoice for a
payment milestone, read its payments, and answer "has it been paid?".
Functions receive a SQLAlchemy ``Session``.

Design notes
------------
- ``create_invoice`` flushes but never commits.  The caller wraps invoice
  creation together with its own writes (stamping the milestone) in a single
  transaction.
- Invoice numbers come from a locked per-month counter row
  (``invoice_counter``), never from counting existing invoices, so two
  concurrent writers can not draw the same number.  The first use of a month
  inserts the row with ``ON CONFLICT DO NOTHING`` and then locks it.
- Bea Meterai is required when the amount is strictly above
  ``MATERAI_THRESHOLD``.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.models.invoice import Invoice
from app.models.invoice_counter import InvoiceCounter
from app.models.payment import Payment
from app.schemas.invoice import InvoiceResponse, PaymentResponse
from app.utils import timeutils
from app.utils.constants import INVOICE_NUMBER_PREFIX, MATERAI_AMOUNT, MATERAI_THRESHOLD
from app.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


def _ensure_counter_row(db: Session, period: str) -> None:
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is not None:
        db.execute(
            insert(InvoiceCounter)
            .values(period=period, current_value=0)
            .on_conflict_do_nothing(index_elements=["period"])
        )
        return

    # Generic path: create inside a savepoint and tolerate a concurrent insert.
    if db.get(InvoiceCounter, period) is None:
        savepoint = db.begin_nested()
        try:
            db.add(InvoiceCounter(period=period, current_value=0))
            db.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            if db.get(InvoiceCounter, period) is None:
                raise


def next_invoice_number(db: Session, issued_at: datetime.datetime) -> str:
    """Claim the next invoice number for the month of *issued_at*.

    Locks the month's counter row (``SELECT ... FOR UPDATE``) and increments
    it.  The increment is only visible once the caller commits; a rollback
    returns the number.

    Args:
        db: Active SQLAlchemy session (inside the caller's transaction).
        issued_at: Issue instant; its business-calendar month selects the
                   counter row.

    Returns:
        An invoice number such as ``INV-202502-007``.
    """
    period = timeutils.ensure_aware(issued_at).astimezone(timeutils.business_tz()).strftime("%Y%m")
    _ensure_counter_row(db, period)

    counter: InvoiceCounter = db.execute(
        select(InvoiceCounter)
        .where(InvoiceCounter.period == period)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one()

    counter.current_value += 1
    db.flush()

    number = f"{INVOICE_NUMBER_PREFIX}-{period}-{counter.current_value:03d}"
    logger.debug("next_invoice_number: period=%s value=%d", period, counter.current_value)
    return number


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def is_materai_required(amount: Decimal) -> bool:
    """Return True when a document of *amount* needs Bea Meterai."""
    return Decimal(amount) > MATERAI_THRESHOLD


def create_invoice(
    db: Session,
    *,
    total_amount: Decimal,
    due_date: datetime.datetime,
    created_by: int | None,
    quotation_id: int | None = None,
    project_id: int | None = None,
    client_id: int | None = None,
    payment_milestone_id: int | None = None,
    terms: str | None = None,
) -> Invoice:
    """Persist a DRAFT invoice and flush it so that ``id`` is assigned.

    Does not commit; the caller owns the transaction boundary.

    Returns:
        The pending ``Invoice`` ORM instance.
    """
    issued_at = timeutils.now()
    materai_required = is_materai_required(total_amount)

    invoice = Invoice(
        invoice_number=next_invoice_number(db, issued_at),
        quotation_id=quotation_id,
        project_id=project_id,
        client_id=client_id,
        payment_milestone_id=payment_milestone_id,
        total_amount=total_amount,
        due_date=due_date,
        materai_required=materai_required,
        materai_amount=MATERAI_AMOUNT if materai_required else None,
        materai_applied=False,
        status="DRAFT",
        terms=terms,
        created_by=created_by,
        creation_date=issued_at,
    )
    db.add(invoice)
    db.flush()

    logger.info(
        "create_invoice: %s amount=%s materai=%s milestone=%s",
        invoice.invoice_number, total_amount, materai_required, payment_milestone_id,
    )
    return invoice


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    """Return an invoice or raise ``NotFoundError``."""
    invoice: Invoice | None = db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice dengan ID {invoice_id} tidak ditemukan.")
    return invoice


def build_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        quotation_id=invoice.quotation_id,
        project_id=invoice.project_id,
        client_id=invoice.client_id,
        payment_milestone_id=invoice.payment_milestone_id,
        total_amount=float(invoice.total_amount),
        due_date=invoice.due_date,
        materai_required=invoice.materai_required,
        materai_amount=(
            float(invoice.materai_amount) if invoice.materai_amount is not None else None
        ),
        materai_applied=invoice.materai_applied,
        status=invoice.status,
        created_by=invoice.created_by,
        creation_date=invoice.creation_date,
        payments=[
            PaymentResponse(
                id=p.id,
                amount=float(p.amount),
                payment_date=p.payment_date,
                status=p.status,
                method=p.method,
            )
            for p in invoice.payments
        ],
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def list_payments(db: Session, invoice_id: int) -> list[Payment]:
    """Payments of an invoice, oldest first."""
    return (
        db.query(Payment)
        .filter(Payment.invoice_id == invoice_id)
        .order_by(Payment.payment_date.asc(), Payment.id.asc())
        .all()
    )


def record_payment(
    db: Session,
    invoice_id: int,
    amount: Decimal,
    payment_date: datetime.datetime,
    status: str = "COMPLETED",
    method: str | None = "BANK_TRANSFER",
) -> Payment:
    """Record money received against an invoice and commit."""
    invoice = get_invoice(db, invoice_id)
    payment = Payment(
        invoice_id=invoice.id,
        amount=amount,
        payment_date=payment_date,
        status=status,
        method=method,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    logger.info(
        "record_payment: invoice=%s amount=%s status=%s",
        invoice.invoice_number, amount, status,
    )
    return payment


def earliest_payment(invoice: Invoice) -> Payment | None:
    """First payment of *invoice* by payment date, or None."""
    if not invoice.payments:
        return None
    return min(invoice.payments, key=lambda p: p.payment_date)


def has_completed_payment(invoice: Invoice) -> bool:
    return any(p.status == "COMPLETED" for p in invoice.payments)
