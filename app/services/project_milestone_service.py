"""
Project milestone (delivery graph) service layer.

All database access for the ``/api/milestones`` endpoints except analytics
lives here.  Functions receive a SQLAlchemy ``Session`` and return ORM
objects or schema instances ready for serialisation by FastAPI.

Design notes
------------
- Predecessor links are plain ``predecessor_id`` columns.  Cycle detection
  walks the chain iteratively from the candidate predecessor with a visited
  set, so a pre-existing loop in the data can not hang the request.
- Status only moves forward through ``update_progress``, ``mark_as_completed``,
  ``accept_milestone`` and invoice generation; there is no reversal path
  besides setting progress back to 0.
- Revenue auto-allocation divides the project budget by
  ``existing milestones + 1`` and is not retroactive: older milestones keep
  their allocation.
- Incoming naive datetimes are interpreted in the business timezone.
"""

from __future__ import annotations

import datetime
import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.project import Project
from app.models.project_milestone import ProjectMilestone
from app.schemas.project_milestone import (
    DependencyCheckResponse,
    PredecessorStatus,
    ProjectMilestoneCreate,
    ProjectMilestoneResponse,
    ProjectMilestoneSummaryResponse,
    ProjectMilestoneUpdate,
    StatusBreakdown,
)
from app.utils import timeutils
from app.utils.constants import (
    MILESTONE_STATUSES,
    PREDECESSOR_DONE_STATES,
    PREDECESSOR_READY_STATES,
    PROGRESS_LOCKED_STATES,
)
from app.utils.exceptions import ConflictError, DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")

_NON_NULLABLE_FIELDS: frozenset[str] = frozenset(
    {"name", "planned_start_date", "planned_end_date", "planned_revenue", "actual_cost", "priority"}
)
_DATETIME_FIELDS: frozenset[str] = frozenset(
    {"planned_start_date", "planned_end_date", "actual_start_date", "actual_end_date"}
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_project(db: Session, project_id: int) -> Project:
    project: Project | None = db.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Proyek dengan ID {project_id} tidak ditemukan.")
    return project


def _get_milestone(db: Session, milestone_id: int) -> ProjectMilestone:
    milestone: ProjectMilestone | None = db.get(ProjectMilestone, milestone_id)
    if milestone is None:
        raise NotFoundError(f"Milestone proyek dengan ID {milestone_id} tidak ditemukan.")
    return milestone


def _would_create_cycle(db: Session, milestone_id: int, predecessor_id: int) -> bool:
    """Return True if making *predecessor_id* the predecessor of *milestone_id*
    would close a loop.

    Follows ``predecessor_id`` links upward from the candidate.  Reaching
    *milestone_id* means a cycle; reaching an already visited node means the
    data is already looping elsewhere and the walk stops.
    """
    visited: set[int] = set()
    current: int | None = predecessor_id

    while current is not None:
        if current == milestone_id:
            return True
        if current in visited:
            logger.warning(
                "_would_create_cycle: existing loop detected at milestone %d", current
            )
            return False
        visited.add(current)
        current = (
            db.query(ProjectMilestone.predecessor_id)
            .filter(ProjectMilestone.id == current)
            .scalar()
        )

    return False


def _validate_predecessor(
    db: Session,
    project_id: int,
    predecessor_id: int,
    milestone_id: int | None = None,
) -> ProjectMilestone:
    predecessor: ProjectMilestone | None = db.get(ProjectMilestone, predecessor_id)
    if predecessor is None:
        raise NotFoundError(
            f"Milestone pendahulu dengan ID {predecessor_id} tidak ditemukan."
        )
    if predecessor.project_id != project_id:
        raise DomainValidationError("Milestone pendahulu harus berasal dari proyek yang sama.")
    if milestone_id is not None and _would_create_cycle(db, milestone_id, predecessor_id):
        raise DomainValidationError(
            "Milestone pendahulu tidak dapat diatur: akan membentuk ketergantungan melingkar."
        )
    return predecessor


def _validate_dates(start: datetime.datetime, end: datetime.datetime) -> None:
    if end <= start:
        raise DomainValidationError("Tanggal selesai harus setelah tanggal mulai.")


def _delay_days(planned_end: datetime.datetime, actual_end: datetime.datetime) -> int:
    return max(0, timeutils.days_between(planned_end, actual_end))


def _allocate_revenue(db: Session, project: Project) -> Decimal:
    """Equal share of the project budget, rounded to the nearest rupiah."""
    if not project.estimated_budget:
        logger.warning(
            "create_milestone: project %s has no estimated budget, revenue set to 0",
            project.number,
        )
        return _ZERO

    existing = (
        db.query(func.count(ProjectMilestone.id))
        .filter(ProjectMilestone.project_id == project.id)
        .scalar()
    ) or 0
    share = Decimal(project.estimated_budget) / Decimal(existing + 1)
    return share.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _predecessor_status(predecessor: ProjectMilestone | None) -> PredecessorStatus | None:
    if predecessor is None:
        return None
    return PredecessorStatus(
        id=predecessor.id,
        milestone_number=predecessor.milestone_number,
        name=predecessor.name,
        status=predecessor.status,
        completion_percentage=float(predecessor.completion_percentage),
    )


def _build_response(row: ProjectMilestone) -> ProjectMilestoneResponse:
    return ProjectMilestoneResponse(
        id=row.id,
        project_id=row.project_id,
        milestone_number=row.milestone_number,
        name=row.name,
        name_id=row.name_id,
        description=row.description,
        description_id=row.description_id,
        planned_start_date=row.planned_start_date,
        planned_end_date=row.planned_end_date,
        actual_start_date=row.actual_start_date,
        actual_end_date=row.actual_end_date,
        planned_revenue=float(row.planned_revenue),
        recognized_revenue=float(row.recognized_revenue),
        remaining_revenue=float(row.remaining_revenue),
        estimated_cost=float(row.estimated_cost) if row.estimated_cost is not None else None,
        actual_cost=float(row.actual_cost),
        priority=row.priority,
        completion_percentage=float(row.completion_percentage),
        status=row.status,
        predecessor_id=row.predecessor_id,
        predecessor=_predecessor_status(row.predecessor),
        successor_ids=[s.id for s in row.successors],
        delay_days=row.delay_days,
        delay_reason=row.delay_reason,
        deliverables=row.deliverables,
        accepted_by=row.accepted_by,
        accepted_at=row.accepted_at,
        notes=row.notes,
        notes_id=row.notes_id,
    )


def _apply_progress(milestone: ProjectMilestone, percentage: Decimal, now: datetime.datetime) -> None:
    """Derive status and actual dates from a completion percentage."""
    milestone.completion_percentage = percentage
    if percentage == 0:
        milestone.status = "PENDING"
    elif percentage < _HUNDRED:
        milestone.status = "IN_PROGRESS"
    else:
        milestone.status = "COMPLETED"

    if percentage > 0:
        if milestone.actual_start_date is None:
            milestone.actual_start_date = now
    else:
        milestone.actual_start_date = None

    milestone.actual_end_date = now if percentage >= _HUNDRED else None


def _ensure_progress_open(milestone: ProjectMilestone, action: str) -> None:
    if milestone.status in PROGRESS_LOCKED_STATES:
        raise DomainValidationError(
            f"Milestone berstatus {milestone.status} tidak dapat {action}."
        )


def _check_percentage(percentage: Decimal) -> None:
    if percentage < 0 or percentage > _HUNDRED:
        raise DomainValidationError("Persentase penyelesaian harus di antara 0 dan 100.")


# ---------------------------------------------------------------------------
# Public service functions: read operations
# ---------------------------------------------------------------------------


def get_milestone(db: Session, milestone_id: int) -> ProjectMilestone:
    """Return a project milestone or raise ``NotFoundError``."""
    return _get_milestone(db, milestone_id)


def get_detail(db: Session, milestone_id: int) -> ProjectMilestoneResponse:
    return _build_response(_get_milestone(db, milestone_id))


def list_by_project(db: Session, project_id: int) -> list[ProjectMilestoneResponse]:
    """All milestones of a project ordered by ``milestone_number``."""
    _get_project(db, project_id)
    rows = (
        db.query(ProjectMilestone)
        .filter(ProjectMilestone.project_id == project_id)
        .order_by(ProjectMilestone.milestone_number.asc())
        .all()
    )
    logger.debug("list_by_project: project=%d count=%d", project_id, len(rows))
    return [_build_response(r) for r in rows]


def check_dependencies(db: Session, milestone_id: int) -> DependencyCheckResponse:
    """Report whether a milestone may start.

    A milestone may start when it has no predecessor, or when the predecessor
    is COMPLETED, ACCEPTED or BILLED.
    """
    milestone = _get_milestone(db, milestone_id)
    predecessor = milestone.predecessor

    reasons: list[str] = []
    if predecessor is not None and predecessor.status not in PREDECESSOR_READY_STATES:
        reasons.append(
            f"Milestone pendahulu {predecessor.milestone_number} ({predecessor.name}) "
            f"belum selesai."
        )

    return DependencyCheckResponse(
        can_start=not reasons,
        reasons=reasons,
        predecessor_status=_predecessor_status(predecessor),
    )


def get_project_summary(db: Session, project_id: int) -> ProjectMilestoneSummaryResponse:
    """Revenue and completion roll-up of a project's milestones.

    Args:
        db: Active SQLAlchemy session.
        project_id: Project to summarise.

    Returns:
        A ``ProjectMilestoneSummaryResponse`` with totals, the mean completion
        percentage, and count plus recognised revenue per status.

    Raises:
        NotFoundError: If the project does not exist.
    """
    project = _get_project(db, project_id)
    milestones = list(project.milestones)

    planned = sum((Decimal(m.planned_revenue) for m in milestones), _ZERO)
    recognized = sum((Decimal(m.recognized_revenue) for m in milestones), _ZERO)
    remaining = sum((Decimal(m.remaining_revenue) for m in milestones), _ZERO)
    average_completion = (
        sum((Decimal(m.completion_percentage) for m in milestones), _ZERO) / len(milestones)
        if milestones
        else _ZERO
    )

    by_status: dict[str, StatusBreakdown] = {}
    for status_name in MILESTONE_STATUSES:
        rows = [m for m in milestones if m.status == status_name]
        if rows:
            by_status[status_name] = StatusBreakdown(
                count=len(rows),
                revenue=float(sum((Decimal(m.recognized_revenue) for m in rows), _ZERO)),
            )

    logger.debug(
        "get_project_summary: project=%s milestones=%d planned=%s recognized=%s",
        project.number, len(milestones), planned, recognized,
    )

    return ProjectMilestoneSummaryResponse(
        project_id=project.id,
        project_number=project.number,
        total_planned_revenue=float(planned),
        total_recognized_revenue=float(recognized),
        total_remaining_revenue=float(remaining),
        average_completion=round(float(average_completion), 2),
        milestone_count=len(milestones),
        by_status=by_status,
        milestones=[_build_response(m) for m in milestones],
    )


# ---------------------------------------------------------------------------
# Public service functions: write operations
# ---------------------------------------------------------------------------


def create_milestone(db: Session, data: ProjectMilestoneCreate) -> ProjectMilestone:
    """Plan a new delivery milestone.

    Args:
        db: Active SQLAlchemy session.
        data: Validated creation payload.

    Returns:
        The newly persisted ``ProjectMilestone`` (status PENDING).

    Raises:
        NotFoundError: Project or predecessor missing.
        ConflictError: ``milestone_number`` already used in the project.
        DomainValidationError: Predecessor from another project, or planned
            end not after planned start.
    """
    project = _get_project(db, data.project_id)

    duplicate = (
        db.query(ProjectMilestone.id)
        .filter(
            ProjectMilestone.project_id == project.id,
            ProjectMilestone.milestone_number == data.milestone_number,
        )
        .first()
    )
    if duplicate is not None:
        raise ConflictError(
            f"Milestone nomor {data.milestone_number} sudah ada pada proyek ini."
        )

    if data.predecessor_id is not None:
        _validate_predecessor(db, project.id, data.predecessor_id)

    start = timeutils.ensure_aware(data.planned_start_date)
    end = timeutils.ensure_aware(data.planned_end_date)
    _validate_dates(start, end)

    planned_revenue = (
        data.planned_revenue
        if data.planned_revenue is not None
        else _allocate_revenue(db, project)
    )

    milestone = ProjectMilestone(
        project_id=project.id,
        milestone_number=data.milestone_number,
        name=data.name,
        name_id=data.name_id,
        description=data.description,
        description_id=data.description_id,
        planned_start_date=start,
        planned_end_date=end,
        planned_revenue=planned_revenue,
        recognized_revenue=_ZERO,
        remaining_revenue=planned_revenue,
        estimated_cost=data.estimated_cost,
        actual_cost=_ZERO,
        priority=data.priority,
        completion_percentage=_ZERO,
        status="PENDING",
        predecessor_id=data.predecessor_id,
        deliverables=data.deliverables,
        notes=data.notes,
        notes_id=data.notes_id,
    )
    db.add(milestone)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            f"Milestone nomor {data.milestone_number} sudah ada pada proyek ini."
        ) from exc
    db.refresh(milestone)

    logger.info(
        "create_milestone: project=%s number=%d revenue=%s (id=%d)",
        project.number, milestone.milestone_number, milestone.planned_revenue, milestone.id,
    )
    return milestone


def update_milestone(
    db: Session, milestone_id: int, data: ProjectMilestoneUpdate
) -> ProjectMilestone:
    """Apply a partial update to a delivery milestone.

    - A changed predecessor is re-validated (same project, no cycle);
      ``predecessor_id: null`` detaches it.
    - Changed planned dates are re-validated for ordering.
    - A supplied ``actual_end_date`` sets ``delay_days`` to the whole days it
      overran the planned end (never negative).
    - A changed ``planned_revenue`` refreshes ``remaining_revenue``.

    Raises:
        NotFoundError: Milestone or new predecessor missing.
        DomainValidationError: Any of the rules above is violated.
    """
    milestone = _get_milestone(db, milestone_id)

    update_data = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field not in _NON_NULLABLE_FIELDS
    }
    for field in _DATETIME_FIELDS & update_data.keys():
        if update_data[field] is not None:
            update_data[field] = timeutils.ensure_aware(update_data[field])

    if "predecessor_id" in update_data:
        new_predecessor = update_data["predecessor_id"]
        if new_predecessor is not None and new_predecessor != milestone.predecessor_id:
            _validate_predecessor(db, milestone.project_id, new_predecessor, milestone.id)

    if "planned_start_date" in update_data or "planned_end_date" in update_data:
        _validate_dates(
            update_data.get("planned_start_date", milestone.planned_start_date),
            update_data.get("planned_end_date", milestone.planned_end_date),
        )

    if update_data.get("actual_end_date") is not None:
        planned_end = update_data.get("planned_end_date", milestone.planned_end_date)
        update_data["delay_days"] = _delay_days(planned_end, update_data["actual_end_date"])

    for field, value in update_data.items():
        setattr(milestone, field, value)

    if "planned_revenue" in update_data:
        milestone.remaining_revenue = Decimal(milestone.planned_revenue) - Decimal(
            milestone.recognized_revenue
        )

    db.commit()
    db.refresh(milestone)

    logger.info("update_milestone: id=%d fields=%s", milestone.id, sorted(update_data))
    return milestone


def remove_milestone(db: Session, milestone_id: int) -> None:
    """Delete a milestone that no other milestone depends on.

    Raises:
        NotFoundError: Milestone missing.
        DomainValidationError: Milestone is the predecessor of another.
    """
    milestone = _get_milestone(db, milestone_id)

    successor_count = (
        db.query(func.count(ProjectMilestone.id))
        .filter(ProjectMilestone.predecessor_id == milestone.id)
        .scalar()
    )
    if successor_count:
        raise DomainValidationError(
            "Milestone tidak dapat dihapus: masih menjadi pendahulu milestone lain. "
            "Hapus ketergantungan terlebih dahulu."
        )

    # Payment tranches pointing here fall back to unlinked
    for payment_milestone in milestone.payment_milestones:
        payment_milestone.project_milestone_id = None

    db.delete(milestone)
    db.commit()

    logger.info("remove_milestone: id=%d", milestone_id)


def update_progress(db: Session, milestone_id: int, percentage: Decimal) -> ProjectMilestone:
    """Set completion and derive status.

    0 → PENDING, (0, 100) → IN_PROGRESS, 100 → COMPLETED.  The actual start
    is stamped once progress is above 0 and the actual end once it reaches
    100; both are cleared when progress goes back to 0.

    Raises:
        NotFoundError: Milestone missing.
        DomainValidationError: Percentage outside [0, 100], or the milestone
            is already ACCEPTED, BILLED or CANCELLED.
    """
    percentage = Decimal(percentage)
    _check_percentage(percentage)
    milestone = _get_milestone(db, milestone_id)
    _ensure_progress_open(milestone, "diubah progresnya")

    _apply_progress(milestone, percentage, timeutils.now())
    db.commit()
    db.refresh(milestone)

    logger.info(
        "update_progress: id=%d pct=%s status=%s", milestone.id, percentage, milestone.status
    )
    return milestone


def mark_as_completed(db: Session, milestone_id: int) -> ProjectMilestone:
    """Force a milestone to COMPLETED at 100 %.

    Raises:
        NotFoundError: Milestone missing.
        DomainValidationError: Predecessor not COMPLETED or ACCEPTED, or the
            milestone is already ACCEPTED, BILLED or CANCELLED.
    """
    milestone = _get_milestone(db, milestone_id)
    _ensure_progress_open(milestone, "diselesaikan ulang")
    predecessor = milestone.predecessor
    if predecessor is not None and predecessor.status not in PREDECESSOR_DONE_STATES:
        raise DomainValidationError(
            f"Milestone tidak dapat diselesaikan: milestone pendahulu "
            f"{predecessor.milestone_number} belum selesai."
        )

    now = timeutils.now()
    milestone.status = "COMPLETED"
    milestone.completion_percentage = _HUNDRED
    milestone.actual_end_date = now
    if milestone.actual_start_date is None:
        milestone.actual_start_date = now

    db.commit()
    db.refresh(milestone)

    logger.info("mark_as_completed: id=%d", milestone.id)
    return milestone


def accept_milestone(db: Session, milestone_id: int, accepted_by: str) -> ProjectMilestone:
    """Record client acceptance of a COMPLETED milestone."""
    milestone = _get_milestone(db, milestone_id)
    if milestone.status != "COMPLETED":
        raise DomainValidationError(
            f"Hanya milestone berstatus COMPLETED yang dapat diterima "
            f"(status saat ini {milestone.status})."
        )

    milestone.status = "ACCEPTED"
    milestone.accepted_by = accepted_by
    milestone.accepted_at = timeutils.now()
    db.commit()
    db.refresh(milestone)

    logger.info("accept_milestone: id=%d by=%s", milestone.id, accepted_by)
    return milestone


def recognize_revenue(
    db: Session,
    milestone_id: int,
    completion_percentage: Decimal,
    actual_cost: Decimal | None = None,
) -> ProjectMilestone:
    """Recognise revenue by percentage of completion.

    ``earned = planned_revenue × completion / 100``; the difference to what
    has already been recognised is added to ``recognized_revenue``.

    Args:
        db: Active SQLAlchemy session.
        milestone_id: Milestone to recognise revenue on.
        completion_percentage: Cumulative completion, 0–100.
        actual_cost: Optional cumulative actual cost to record.

    Returns:
        The updated ``ProjectMilestone``.

    Raises:
        NotFoundError: Milestone missing.
        DomainValidationError: Milestone CANCELLED, percentage outside
            [0, 100], or nothing new to recognise.
    """
    milestone = _get_milestone(db, milestone_id)
    if milestone.status == "CANCELLED":
        raise DomainValidationError("Tidak dapat mengakui pendapatan untuk milestone yang dibatalkan.")

    completion_percentage = Decimal(completion_percentage)
    _check_percentage(completion_percentage)

    planned = Decimal(milestone.planned_revenue)
    recognized = Decimal(milestone.recognized_revenue)
    earned = (planned * completion_percentage / _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP)
    delta = earned - recognized
    if delta < _CENT:
        raise DomainValidationError(
            f"Tidak ada pendapatan baru untuk diakui (sudah diakui {recognized})."
        )

    milestone.recognized_revenue = recognized + delta
    milestone.remaining_revenue = planned - milestone.recognized_revenue
    milestone.completion_percentage = completion_percentage
    # ACCEPTED and BILLED are past the progress rule
    if milestone.status in ("PENDING", "IN_PROGRESS"):
        if completion_percentage >= _HUNDRED:
            milestone.status = "COMPLETED"
            milestone.actual_end_date = milestone.actual_end_date or timeutils.now()
        elif completion_percentage > 0:
            milestone.status = "IN_PROGRESS"
    if actual_cost is not None:
        milestone.actual_cost = actual_cost

    db.commit()
    db.refresh(milestone)

    logger.info(
        "recognize_revenue: id=%d pct=%s delta=%s recognized=%s",
        milestone.id, completion_percentage, delta, milestone.recognized_revenue,
    )
    return milestone
