"""
Payment milestone (termin pembayaran) service layer.

All database access for the ``/api/payment-milestones`` endpoints lives here.
Functions receive a SQLAlchemy ``Session`` and return ORM objects or schema
instances ready for serialisation by FastAPI.

Design notes
------------
- Amounts are computed with ``Decimal`` and quantized to 2 places with
  ROUND_HALF_UP; floats appear only in response schemas.
- Every write that touches a quotation's percentage sum first locks the
  quotation row (``SELECT ... FOR UPDATE``) so concurrent schedule edits are
  serialized and the ``Σ percentage ≤ 100`` check can not race.
- When the percentages of a quotation sum to exactly 100, the highest-numbered
  un-invoiced milestone absorbs the rounding remainder so that the amounts add
  up to the quotation total to the cent.
- ``generate_milestone_invoice`` creates the invoice and stamps its id on the
  milestone inside one transaction: one commit at the end, rollback on any
  failure.
"""

from __future__ import annotations

import datetime
import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.invoice import Invoice
from app.models.payment_milestone import PaymentMilestone
from app.models.project_milestone import ProjectMilestone
from app.models.quotation import Quotation
from app.schemas.payment_milestone import (
    MilestoneValidationResponse,
    PaymentMilestoneCreate,
    PaymentMilestoneResponse,
    PaymentMilestoneUpdate,
    PaymentProgressResponse,
    ProgressMilestoneItem,
)
from app.services import invoice_service
from app.utils import timeutils
from app.utils.constants import DEFAULT_INVOICE_DUE_DAYS, PREDECESSOR_DONE_STATES
from app.utils.exceptions import ConflictError, DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")

# Columns that may not be cleared through a partial update
_NON_NULLABLE_FIELDS: frozenset[str] = frozenset(
    {"milestone_number", "name", "payment_percentage"}
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_amount(total_amount: Decimal, percentage: Decimal) -> Decimal:
    """Return ``total × percentage / 100`` rounded half-up to the cent.

    Example::

        calculate_amount(Decimal("100000000"), Decimal("25"))
        # Decimal('25000000.00')
    """
    return _money(Decimal(total_amount) * Decimal(percentage) / _HUNDRED)


def _get_quotation(db: Session, quotation_id: int, *, lock: bool = False) -> Quotation:
    query = db.query(Quotation).filter(Quotation.id == quotation_id)
    if lock:
        query = query.with_for_update()
    quotation: Quotation | None = query.first()
    if quotation is None:
        raise NotFoundError(f"Quotation dengan ID {quotation_id} tidak ditemukan.")
    return quotation


def _get_milestone(db: Session, milestone_id: int, *, lock: bool = False) -> PaymentMilestone:
    query = db.query(PaymentMilestone).filter(PaymentMilestone.id == milestone_id)
    if lock:
        query = query.with_for_update().populate_existing()
    milestone: PaymentMilestone | None = query.first()
    if milestone is None:
        raise NotFoundError(f"Termin pembayaran dengan ID {milestone_id} tidak ditemukan.")
    return milestone


def _lock_schedule(db: Session, milestone_id: int) -> tuple[Quotation, PaymentMilestone]:
    """Lock the owning quotation, then re-read the milestone under that lock.

    Every schedule write and invoice generation takes the quotation lock
    first, so the re-read sees any invoice committed by a concurrent writer.
    """
    quotation_id = _get_milestone(db, milestone_id).quotation_id
    quotation = _get_quotation(db, quotation_id, lock=True)
    milestone = _get_milestone(db, milestone_id, lock=True)
    return quotation, milestone


def _milestones_of(db: Session, quotation_id: int) -> list[PaymentMilestone]:
    return (
        db.query(PaymentMilestone)
        .filter(PaymentMilestone.quotation_id == quotation_id)
        .order_by(PaymentMilestone.milestone_number.asc())
        .all()
    )


def _total_percentage(
    milestones: list[PaymentMilestone], exclude_id: int | None = None
) -> Decimal:
    return sum(
        (
            Decimal(m.payment_percentage)
            for m in milestones
            if exclude_id is None or m.id != exclude_id
        ),
        Decimal("0"),
    )


def _ensure_not_invoiced(milestone: PaymentMilestone, action: str) -> None:
    if milestone.is_invoiced:
        raise ConflictError(
            f"Termin {milestone.milestone_number} sudah memiliki invoice "
            f"dan tidak dapat {action}."
        )


def _get_linkable_project_milestone(
    db: Session, quotation: Quotation, project_milestone_id: int
) -> ProjectMilestone:
    """Fetch a project milestone and check it belongs to the quotation's project."""
    project_milestone: ProjectMilestone | None = db.get(ProjectMilestone, project_milestone_id)
    if project_milestone is None:
        raise NotFoundError(
            f"Milestone proyek dengan ID {project_milestone_id} tidak ditemukan."
        )
    if quotation.project_id is not None and project_milestone.project_id != quotation.project_id:
        raise DomainValidationError(
            "Milestone proyek berasal dari proyek yang berbeda dengan quotation."
        )
    return project_milestone


def _reconcile_amounts(quotation: Quotation, milestones: list[PaymentMilestone]) -> None:
    """Push the rounding remainder onto the last un-invoiced milestone.

    Only applies when the schedule is complete (Σ percentage == 100).
    """
    if not milestones or _total_percentage(milestones) != _HUNDRED:
        return

    open_milestones = [m for m in milestones if not m.is_invoiced]
    if not open_milestones:
        return
    absorber = max(open_milestones, key=lambda m: m.milestone_number)

    others = sum(
        (Decimal(m.payment_amount) for m in milestones if m is not absorber),
        Decimal("0"),
    )
    target = _money(Decimal(quotation.total_amount) - others)
    if target < 0:
        logger.warning(
            "_reconcile_amounts: quotation=%d remainder would be negative (%s), skipped",
            quotation.id, target,
        )
        return

    if target != Decimal(absorber.payment_amount):
        logger.debug(
            "_reconcile_amounts: quotation=%d milestone=%d %s -> %s",
            quotation.id, absorber.milestone_number, absorber.payment_amount, target,
        )
        absorber.payment_amount = target


def _commit_schedule(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflict_detail) from exc


def _build_response(row: PaymentMilestone) -> PaymentMilestoneResponse:
    return PaymentMilestoneResponse(
        id=row.id,
        quotation_id=row.quotation_id,
        milestone_number=row.milestone_number,
        name=row.name,
        name_id=row.name_id,
        description=row.description,
        description_id=row.description_id,
        payment_percentage=float(row.payment_percentage),
        payment_amount=float(row.payment_amount),
        due_date=row.due_date,
        due_days_from_prev=row.due_days_from_prev,
        deliverables=row.deliverables,
        project_milestone_id=row.project_milestone_id,
        invoice_id=row.invoice_id,
        is_invoiced=row.is_invoiced,
    )


# ---------------------------------------------------------------------------
# Public service functions: read operations
# ---------------------------------------------------------------------------


def get_milestone(db: Session, milestone_id: int) -> PaymentMilestone:
    """Return a payment milestone or raise ``NotFoundError``."""
    return _get_milestone(db, milestone_id)


def get_detail(db: Session, milestone_id: int) -> PaymentMilestoneResponse:
    return _build_response(_get_milestone(db, milestone_id))


def list_milestones(db: Session, quotation_id: int) -> list[PaymentMilestoneResponse]:
    """All milestones of a quotation ordered by ``milestone_number``."""
    _get_quotation(db, quotation_id)
    rows = _milestones_of(db, quotation_id)
    logger.debug("list_milestones: quotation=%d count=%d", quotation_id, len(rows))
    return [_build_response(r) for r in rows]


def validate_quotation_milestones(db: Session, quotation_id: int) -> bool:
    """True iff the quotation has milestones whose percentages sum to exactly 100."""
    _get_quotation(db, quotation_id)
    milestones = _milestones_of(db, quotation_id)
    return bool(milestones) and _total_percentage(milestones) == _HUNDRED


def get_validation(db: Session, quotation_id: int) -> MilestoneValidationResponse:
    valid = validate_quotation_milestones(db, quotation_id)
    milestones = _milestones_of(db, quotation_id)
    total = _total_percentage(milestones)

    if valid:
        message = "Termin pembayaran lengkap (100%)."
    elif not milestones:
        message = "Quotation belum memiliki termin pembayaran."
    else:
        message = f"Total persentase termin {total}%, harus tepat 100%."

    return MilestoneValidationResponse(
        quotation_id=quotation_id,
        valid=valid,
        total_percentage=float(total),
        milestone_count=len(milestones),
        message=message,
    )


def get_progress(db: Session, quotation_id: int) -> PaymentProgressResponse:
    """Summarise how much of a quotation's schedule has been invoiced.

    Args:
        db: Active SQLAlchemy session.
        quotation_id: Quotation whose schedule is summarised.

    Returns:
        A ``PaymentProgressResponse``; ``invoiced_percentage`` is the share of
        milestones (not of money) already invoiced, rounded to an integer.

    Raises:
        NotFoundError: If the quotation does not exist.
    """
    quotation = _get_quotation(db, quotation_id)
    milestones = _milestones_of(db, quotation_id)

    invoiced = [m for m in milestones if m.is_invoiced]
    total_amount = Decimal(quotation.total_amount)
    total_invoiced = sum((Decimal(m.payment_amount) for m in invoiced), Decimal("0"))
    invoiced_percentage = (
        round(len(invoiced) / len(milestones) * 100) if milestones else 0
    )

    logger.debug(
        "get_progress: quotation=%d invoiced=%d/%d",
        quotation_id, len(invoiced), len(milestones),
    )

    return PaymentProgressResponse(
        quotation_id=quotation.id,
        total_milestones=len(milestones),
        milestones_invoiced=len(invoiced),
        invoiced_percentage=invoiced_percentage,
        total_amount=float(total_amount),
        total_invoiced=float(total_invoiced),
        outstanding_amount=float(total_amount - total_invoiced),
        milestones=[
            ProgressMilestoneItem(
                number=m.milestone_number,
                name=m.name,
                name_id=m.name_id,
                percentage=float(m.payment_percentage),
                amount=float(m.payment_amount),
                due_date=m.due_date,
                is_invoiced=m.is_invoiced,
                invoice_id=m.invoice_id,
            )
            for m in milestones
        ],
    )


# ---------------------------------------------------------------------------
# Public service functions: write operations
# ---------------------------------------------------------------------------


def add_milestone(
    db: Session, quotation_id: int, data: PaymentMilestoneCreate
) -> PaymentMilestone:
    """Add a tranche to a quotation's payment schedule.

    Args:
        db: Active SQLAlchemy session.
        quotation_id: Owning quotation (locked for the duration of the write).
        data: Validated creation payload.

    Returns:
        The newly persisted ``PaymentMilestone``.

    Raises:
        NotFoundError: Quotation or linked project milestone missing.
        ConflictError: ``milestone_number`` already used on this quotation.
        DomainValidationError: Percentages would exceed 100, or the linked
            project milestone belongs to another project.
    """
    quotation = _get_quotation(db, quotation_id, lock=True)
    milestones = _milestones_of(db, quotation_id)

    if any(m.milestone_number == data.milestone_number for m in milestones):
        raise ConflictError(
            f"Termin nomor {data.milestone_number} sudah ada pada quotation ini."
        )

    current_total = _total_percentage(milestones)
    if current_total + data.payment_percentage > _HUNDRED:
        raise DomainValidationError(
            f"Total persentase akan menjadi {current_total + data.payment_percentage}%, "
            f"melebihi 100% (saat ini {current_total}%)."
        )

    if data.project_milestone_id is not None:
        _get_linkable_project_milestone(db, quotation, data.project_milestone_id)

    milestone = PaymentMilestone(
        quotation_id=quotation.id,
        milestone_number=data.milestone_number,
        name=data.name,
        name_id=data.name_id,
        description=data.description,
        description_id=data.description_id,
        payment_percentage=data.payment_percentage,
        payment_amount=calculate_amount(quotation.total_amount, data.payment_percentage),
        due_date=timeutils.ensure_aware(data.due_date) if data.due_date else None,
        due_days_from_prev=data.due_days_from_prev,
        deliverables=data.deliverables,
        project_milestone_id=data.project_milestone_id,
    )
    db.add(milestone)

    _reconcile_amounts(quotation, milestones + [milestone])
    _commit_schedule(db, f"Termin nomor {data.milestone_number} sudah ada pada quotation ini.")
    db.refresh(milestone)

    logger.info(
        "add_milestone: quotation=%d number=%d pct=%s amount=%s (id=%d)",
        quotation.id, milestone.milestone_number, milestone.payment_percentage,
        milestone.payment_amount, milestone.id,
    )
    return milestone


def update_milestone(
    db: Session, milestone_id: int, data: PaymentMilestoneUpdate
) -> PaymentMilestone:
    """Apply a partial update and recompute the amount.

    The amount is always recomputed from the (possibly patched) percentage
    against the quotation's current total.

    Raises:
        NotFoundError: Milestone missing.
        ConflictError: Milestone already invoiced, or the new number is taken.
        DomainValidationError: Percentages of the quotation would exceed 100.
    """
    quotation, milestone = _lock_schedule(db, milestone_id)
    _ensure_not_invoiced(milestone, "diubah")

    update_data = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field not in _NON_NULLABLE_FIELDS
    }
    if update_data.get("due_date") is not None:
        update_data["due_date"] = timeutils.ensure_aware(update_data["due_date"])
    milestones = _milestones_of(db, quotation.id)

    new_number = update_data.get("milestone_number")
    if new_number is not None and any(
        m.milestone_number == new_number and m.id != milestone.id for m in milestones
    ):
        raise ConflictError(f"Termin nomor {new_number} sudah ada pada quotation ini.")

    new_percentage = update_data.get("payment_percentage")
    if new_percentage is not None:
        others = _total_percentage(milestones, exclude_id=milestone.id)
        if others + new_percentage > _HUNDRED:
            raise DomainValidationError(
                f"Total persentase akan menjadi {others + new_percentage}%, melebihi 100%."
            )

    for field, value in update_data.items():
        setattr(milestone, field, value)
    milestone.payment_amount = calculate_amount(
        quotation.total_amount, milestone.payment_percentage
    )

    _reconcile_amounts(quotation, milestones)
    _commit_schedule(db, f"Termin nomor {milestone.milestone_number} sudah ada pada quotation ini.")
    db.refresh(milestone)

    logger.info(
        "update_milestone: id=%d fields=%s amount=%s",
        milestone.id, sorted(update_data), milestone.payment_amount,
    )
    return milestone


def remove_milestone(db: Session, milestone_id: int) -> None:
    """Delete an un-invoiced milestone.

    Raises:
        NotFoundError: Milestone missing.
        ConflictError: Milestone already has an invoice.
    """
    _, milestone = _lock_schedule(db, milestone_id)
    _ensure_not_invoiced(milestone, "dihapus")

    quotation_id, number = milestone.quotation_id, milestone.milestone_number
    db.delete(milestone)
    db.commit()

    logger.info("remove_milestone: quotation=%d number=%d (id=%d)", quotation_id, number, milestone_id)


def recalculate_milestone_amounts(db: Session, quotation_id: int) -> list[PaymentMilestone]:
    """Recompute every milestone amount from its percentage and the current total.

    Percentages are left untouched.  Invoiced milestones keep the amount that
    was billed.

    Returns:
        The quotation's milestones after recalculation.
    """
    quotation = _get_quotation(db, quotation_id, lock=True)
    milestones = _milestones_of(db, quotation_id)

    for m in milestones:
        if m.is_invoiced:
            logger.warning(
                "recalculate_milestone_amounts: quotation=%d milestone=%d already invoiced, kept %s",
                quotation_id, m.milestone_number, m.payment_amount,
            )
            continue
        m.payment_amount = calculate_amount(quotation.total_amount, m.payment_percentage)

    _reconcile_amounts(quotation, milestones)
    db.commit()
    for m in milestones:
        db.refresh(m)

    logger.info(
        "recalculate_milestone_amounts: quotation=%d total=%s milestones=%d",
        quotation_id, quotation.total_amount, len(milestones),
    )
    return milestones


def link_to_project_milestone(
    db: Session, milestone_id: int, project_milestone_id: int
) -> PaymentMilestone:
    """Tie a payment tranche to the delivery milestone it pays for.

    Raises:
        NotFoundError: Either milestone missing.
        ConflictError: Payment milestone already invoiced.
        DomainValidationError: Project milestone belongs to a different
            project than the quotation.
    """
    quotation, milestone = _lock_schedule(db, milestone_id)
    _ensure_not_invoiced(milestone, "ditautkan ulang")
    project_milestone = _get_linkable_project_milestone(db, quotation, project_milestone_id)

    milestone.project_milestone_id = project_milestone.id
    db.commit()
    db.refresh(milestone)

    logger.info(
        "link_to_project_milestone: payment_milestone=%d -> project_milestone=%d",
        milestone.id, project_milestone.id,
    )
    return milestone


def resolve_due_date(
    db: Session, milestone: PaymentMilestone, now: datetime.datetime | None = None
) -> datetime.datetime:
    """Work out the invoice due date for *milestone*.

    Resolution order:

    1. the milestone's explicit ``due_date``;
    2. ``due_days_from_prev`` days after the previous milestone's due date
       (its explicit date, else the due date of its invoice), or after *now*
       when the previous milestone has none;
    3. *now* + ``DEFAULT_INVOICE_DUE_DAYS``.
    """
    now = now or timeutils.now()

    if milestone.due_date is not None:
        return milestone.due_date

    if milestone.due_days_from_prev is not None:
        offset = datetime.timedelta(days=milestone.due_days_from_prev)
        previous: PaymentMilestone | None = (
            db.query(PaymentMilestone)
            .filter(
                PaymentMilestone.quotation_id == milestone.quotation_id,
                PaymentMilestone.milestone_number == milestone.milestone_number - 1,
            )
            .first()
        )
        anchor = None
        if previous is not None:
            anchor = previous.due_date
            if anchor is None and previous.invoice is not None:
                anchor = previous.invoice.due_date
        return (anchor or now) + offset

    return now + datetime.timedelta(days=DEFAULT_INVOICE_DUE_DAYS)


def _warn_out_of_sequence(db: Session, milestone: PaymentMilestone) -> None:
    pending_before = (
        db.query(PaymentMilestone.milestone_number)
        .filter(
            PaymentMilestone.quotation_id == milestone.quotation_id,
            PaymentMilestone.milestone_number < milestone.milestone_number,
            PaymentMilestone.invoice_id.is_(None),
        )
        .order_by(PaymentMilestone.milestone_number.asc())
        .all()
    )
    if pending_before:
        logger.warning(
            "generate_milestone_invoice: quotation=%d milestone=%d invoiced before %s",
            milestone.quotation_id, milestone.milestone_number,
            [n for (n,) in pending_before],
        )


def generate_milestone_invoice(db: Session, milestone_id: int, actor_id: int | None) -> Invoice:
    """Create the invoice for a payment milestone and stamp it back.

    Both writes (the invoice row and ``payment_milestone.invoice_id``) are
    committed together or not at all.  A linked project milestone that is
    COMPLETED or ACCEPTED moves to BILLED in the same transaction.

    Args:
        db: Active SQLAlchemy session.
        milestone_id: Payment milestone to bill.
        actor_id: ``User.id`` recorded as the invoice creator.

    Returns:
        The committed ``Invoice``.

    Raises:
        NotFoundError: Milestone missing.
        ConflictError: Milestone already invoiced (the call is not idempotent).
    """
    quotation, milestone = _lock_schedule(db, milestone_id)
    if milestone.is_invoiced:
        raise ConflictError(
            f"Termin {milestone.milestone_number} sudah memiliki invoice "
            f"(ID {milestone.invoice_id})."
        )

    due_date = resolve_due_date(db, milestone)
    _warn_out_of_sequence(db, milestone)

    try:
        invoice = invoice_service.create_invoice(
            db,
            total_amount=Decimal(milestone.payment_amount),
            due_date=due_date,
            created_by=actor_id,
            quotation_id=quotation.id,
            project_id=quotation.project_id,
            client_id=quotation.client_id,
            payment_milestone_id=milestone.id,
            terms=quotation.terms,
        )
        milestone.invoice_id = invoice.id

        project_milestone = milestone.project_milestone
        if project_milestone is not None and project_milestone.status in PREDECESSOR_DONE_STATES:
            project_milestone.status = "BILLED"
            logger.info(
                "generate_milestone_invoice: project milestone %d -> BILLED",
                project_milestone.id,
            )

        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            f"Termin {milestone_id} sudah memiliki invoice."
        ) from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(invoice)
    logger.info(
        "generate_milestone_invoice: milestone=%d invoice=%s amount=%s due=%s",
        milestone_id, invoice.invoice_number, invoice.total_amount, invoice.due_date,
    )
    return invoice
