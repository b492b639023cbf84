"""
Milestone analytics service layer.

Read-only aggregation behind ``GET /api/milestones/analytics``.  Loads the
project milestones whose planned end falls in the requested window, together
with their projects' invoices, payments and expenses, and derives payment
cycle, revenue recognition, profitability and cash-flow figures in Python.

Design notes
------------
- Nothing here writes; concurrent edits may make a report slightly stale.
- Several milestones of one project see the same invoices, so invoices are
  de-duplicated by id before the payment-cycle and on-time figures.
- Day differences round partial days up (``timeutils.days_between``).
- Calendar dates (month buckets, metric dates) are taken in the business
  timezone.
- Zero invoices in scope gives an on-time rate of 100.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal

from sqlalchemy.orm import Session, selectinload

from app.models.invoice import Invoice
from app.models.payment_milestone import PaymentMilestone
from app.models.project import Project
from app.models.project_milestone import ProjectMilestone
from app.schemas.milestone_analytics import (
    CashFlowItem,
    MilestoneAnalyticsQuery,
    MilestoneAnalyticsResponse,
    MilestoneMetricItem,
    ProfitabilityItem,
)
from app.services import invoice_service
from app.utils import timeutils
from app.utils.constants import (
    DEFAULT_TIME_RANGE,
    PREDECESSOR_DONE_STATES,
    TIME_RANGE_DAYS,
    UNINVOICED_FORECAST_FACTOR,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _local_date(value: datetime.datetime) -> datetime.date:
    return timeutils.ensure_aware(value).astimezone(timeutils.business_tz()).date()


def _project_invoices(milestones: list[ProjectMilestone]) -> list[Invoice]:
    """Invoices of every project in scope, each once."""
    seen: dict[int, Invoice] = {}
    for m in milestones:
        for invoice in m.project.invoices:
            seen.setdefault(invoice.id, invoice)
    return list(seen.values())


def _linked_invoice(milestone: ProjectMilestone) -> Invoice | None:
    """Invoice that bills *milestone*.

    Prefers invoices of payment tranches linked to the milestone; falls back
    to the first invoice of its project.
    """
    linked = [pm.invoice for pm in milestone.payment_milestones if pm.invoice is not None]
    if linked:
        return min(linked, key=lambda inv: inv.id)
    invoices = milestone.project.invoices
    return invoices[0] if invoices else None


def calculate_date_range(
    query: MilestoneAnalyticsQuery, now: datetime.datetime | None = None
) -> tuple[datetime.datetime, datetime.datetime]:
    """Resolve the planned-end window of the report.

    An explicit ``start_date`` wins over ``time_range``; ``end_date``
    defaults to *now*.
    """
    now = now or timeutils.now()
    end = timeutils.ensure_aware(query.end_date) if query.end_date else now
    if query.start_date:
        start = timeutils.ensure_aware(query.start_date)
    else:
        days = TIME_RANGE_DAYS.get(query.time_range, TIME_RANGE_DAYS[DEFAULT_TIME_RANGE])
        start = now - datetime.timedelta(days=days)
    return start, end


def calculate_average_payment_cycle(milestones: list[ProjectMilestone]) -> int:
    """Mean days from invoice creation to its earliest payment.

    Invoices without payments and negative differences are ignored; 0 when
    nothing qualifies.
    """
    cycles: list[int] = []
    for invoice in _project_invoices(milestones):
        first = invoice_service.earliest_payment(invoice)
        if first is None:
            continue
        days = timeutils.days_between(invoice.creation_date, first.payment_date)
        if days >= 0:
            cycles.append(days)

    if not cycles:
        return 0
    return round(sum(cycles) / len(cycles))


def calculate_on_time_payment_rate(milestones: list[ProjectMilestone]) -> int:
    """Percentage of invoices whose earliest payment is on or before the due date."""
    invoices = _project_invoices(milestones)
    if not invoices:
        return 100

    on_time = 0
    for invoice in invoices:
        first = invoice_service.earliest_payment(invoice)
        if first is not None and first.payment_date <= invoice.due_date:
            on_time += 1
    return round(on_time / len(invoices) * 100)


def calculate_revenue_recognition_rate(milestones: list[ProjectMilestone]) -> int:
    planned = sum((Decimal(m.planned_revenue or 0) for m in milestones), _ZERO)
    recognized = sum((Decimal(m.recognized_revenue or 0) for m in milestones), _ZERO)
    if planned == 0:
        return 0
    return round(float(recognized / planned * 100))


def calculate_profitability_by_phase(
    milestones: list[ProjectMilestone],
) -> list[ProfitabilityItem]:
    """Revenue, cost and margin grouped by milestone name.

    Revenue is the recognised revenue, or the planned revenue when nothing has
    been recognised.  Cost is the actual cost, or the estimate when no actual
    cost is recorded.  Same-named phases are summed and the margin is
    recomputed from the sums.
    """
    groups: dict[str, list[Decimal]] = {}
    for m in milestones:
        name = m.name or f"Milestone {m.milestone_number}"
        revenue = Decimal(m.recognized_revenue or m.planned_revenue or 0)
        cost = Decimal(m.actual_cost or m.estimated_cost or 0)
        totals = groups.setdefault(name, [_ZERO, _ZERO])
        totals[0] += revenue
        totals[1] += cost

    items: list[ProfitabilityItem] = []
    for name, (revenue, cost) in groups.items():
        profit = revenue - cost
        margin = profit / revenue * 100 if revenue > 0 else _ZERO
        items.append(
            ProfitabilityItem(
                milestone=name,
                revenue=float(revenue),
                cost=float(cost),
                profit=float(profit),
                profit_margin=round(float(margin), 2),
            )
        )
    return items


def calculate_cash_flow_forecast(milestones: list[ProjectMilestone]) -> list[CashFlowItem]:
    """Monthly inflow buckets keyed by the planned end month.

    - expected: planned revenue
    - actual: planned revenue when the project has a completed payment
    - forecast: planned revenue when the project has an invoice, otherwise
      ``planned × UNINVOICED_FORECAST_FACTOR``
    """
    buckets: dict[str, list[Decimal]] = {}
    for m in milestones:
        key = _local_date(m.planned_end_date).strftime("%Y-%m-01")
        revenue = Decimal(m.planned_revenue or 0)
        invoices = m.project.invoices
        has_invoice = bool(invoices)
        has_payment = any(invoice_service.has_completed_payment(inv) for inv in invoices)

        bucket = buckets.setdefault(key, [_ZERO, _ZERO, _ZERO])
        bucket[0] += revenue
        if has_payment:
            bucket[1] += revenue
        bucket[2] += revenue if has_invoice else revenue * UNINVOICED_FORECAST_FACTOR

    return [
        CashFlowItem(
            date=key,
            expected_inflow=float(expected),
            actual_inflow=float(actual),
            forecasted_inflow=float(forecast),
        )
        for key, (expected, actual, forecast) in sorted(buckets.items())
    ]


def calculate_milestone_metrics(
    milestones: list[ProjectMilestone], now: datetime.datetime | None = None
) -> list[MilestoneMetricItem]:
    """Billing status row per milestone.

    PAID when the linked invoice has a completed payment, INVOICED when a
    linked invoice exists, OVERDUE when the milestone is COMPLETED or
    ACCEPTED and its planned end has passed, otherwise PENDING.
    """
    now = now or timeutils.now()
    metrics: list[MilestoneMetricItem] = []

    for m in milestones:
        invoice = _linked_invoice(m)
        payment = invoice_service.earliest_payment(invoice) if invoice is not None else None

        if invoice is not None and invoice_service.has_completed_payment(invoice):
            status = "PAID"
        elif invoice is not None:
            status = "INVOICED"
        elif m.status in PREDECESSOR_DONE_STATES and m.planned_end_date < now:
            status = "OVERDUE"
        else:
            status = "PENDING"

        days_to_payment = None
        if invoice is not None and payment is not None:
            days_to_payment = timeutils.days_between(invoice.creation_date, payment.payment_date)

        metrics.append(
            MilestoneMetricItem(
                id=m.id,
                milestone_number=m.milestone_number,
                name=m.name or f"Milestone {m.milestone_number}",
                amount=float(m.planned_revenue or 0),
                due_date=_local_date(m.planned_end_date),
                invoiced_date=_local_date(invoice.creation_date) if invoice is not None else None,
                paid_date=_local_date(payment.payment_date) if payment is not None else None,
                days_to_payment=days_to_payment,
                status=status,
                revenue_recognized=float(m.recognized_revenue or 0),
            )
        )
    return metrics


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------


def load_milestones(
    db: Session,
    start: datetime.datetime,
    end: datetime.datetime,
    project_id: int | None = None,
) -> list[ProjectMilestone]:
    """Milestones with a planned end in ``[start, end]`` and their billing data."""
    query = (
        db.query(ProjectMilestone)
        .options(
            selectinload(ProjectMilestone.project)
            .selectinload(Project.invoices)
            .selectinload(Invoice.payments),
            selectinload(ProjectMilestone.project).selectinload(Project.expenses),
            selectinload(ProjectMilestone.payment_milestones)
            .selectinload(PaymentMilestone.invoice)
            .selectinload(Invoice.payments),
        )
        .filter(
            ProjectMilestone.planned_end_date >= start,
            ProjectMilestone.planned_end_date <= end,
        )
    )
    if project_id is not None:
        query = query.filter(ProjectMilestone.project_id == project_id)

    return query.order_by(
        ProjectMilestone.planned_end_date.asc(),
        ProjectMilestone.milestone_number.asc(),
    ).all()


def get_analytics(db: Session, query: MilestoneAnalyticsQuery) -> MilestoneAnalyticsResponse:
    """Build the full analytics report for the filtered milestone set.

    Args:
        db: Active SQLAlchemy session.
        query: Project and date-window filters.

    Returns:
        A ``MilestoneAnalyticsResponse``.  An empty window yields zeros, an
        on-time rate of 100 and empty lists.
    """
    now = timeutils.now()
    start, end = calculate_date_range(query, now)
    milestones = load_milestones(db, start, end, query.project_id)

    logger.debug(
        "get_analytics: project=%s window=%s..%s milestones=%d",
        query.project_id, start.isoformat(), end.isoformat(), len(milestones),
    )

    return MilestoneAnalyticsResponse(
        average_payment_cycle=calculate_average_payment_cycle(milestones),
        on_time_payment_rate=calculate_on_time_payment_rate(milestones),
        revenue_recognition_rate=calculate_revenue_recognition_rate(milestones),
        project_profitability_by_phase=calculate_profitability_by_phase(milestones),
        cash_flow_forecast=calculate_cash_flow_forecast(milestones),
        milestone_metrics=calculate_milestone_metrics(milestones, now),
    )
