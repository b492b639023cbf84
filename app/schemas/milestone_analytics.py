"""
Pydantic v2 schemas for milestone analytics (GET /api/milestones/analytics).

All money values are floats in IDR; percentages are integers 0–100.
"""

from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, Field


class MilestoneAnalyticsQuery(BaseModel):
    """Filters for the analytics report.

    Milestones are selected by ``planned_end_date``.  An explicit
    ``start_date`` wins over ``time_range``; ``end_date`` defaults to now.

    Attributes:
        project_id: Restrict to one project.
        start_date: Window start (inclusive).
        end_date: Window end (inclusive).
        time_range: Named window ending now: 30d, 90d (default) or 1y.
    """

    project_id: int | None = Field(default=None, ge=1, description="ID proyek.")
    start_date: datetime.datetime | None = Field(default=None, description="Awal periode.")
    end_date: datetime.datetime | None = Field(default=None, description="Akhir periode.")
    time_range: Literal["30d", "90d", "1y"] = Field(
        default="90d", description="Rentang waktu bawaan: 30d, 90d, 1y."
    )


class ProfitabilityItem(BaseModel):
    milestone: str
    revenue: float
    cost: float
    profit: float
    profit_margin: float


class CashFlowItem(BaseModel):
    """Monthly bucket keyed by the first day of the month ("YYYY-MM-01")."""

    date: str
    expected_inflow: float
    actual_inflow: float
    forecasted_inflow: float


class MilestoneMetricItem(BaseModel):
    id: int
    milestone_number: int
    name: str
    amount: float
    due_date: datetime.date
    invoiced_date: datetime.date | None = None
    paid_date: datetime.date | None = None
    days_to_payment: int | None = None
    status: Literal["PENDING", "INVOICED", "PAID", "OVERDUE"]
    revenue_recognized: float


class MilestoneAnalyticsResponse(BaseModel):
    """Aggregate payment-cycle, revenue and cash-flow report.

    Attributes:
        average_payment_cycle: Mean days from invoice to first payment.
        on_time_payment_rate: % of invoices paid by their due date (100 when
            there are no invoices).
        revenue_recognition_rate: Σ recognised / Σ planned × 100.
        project_profitability_by_phase: Revenue, cost and margin per phase name.
        cash_flow_forecast: Monthly expected/actual/forecast inflow.
        milestone_metrics: One billing-status row per milestone.
    """

    average_payment_cycle: int
    on_time_payment_rate: int
    revenue_recognition_rate: int
    project_profitability_by_phase: list[ProfitabilityItem]
    cash_flow_forecast: list[CashFlowItem]
    milestone_metrics: list[MilestoneMetricItem]
