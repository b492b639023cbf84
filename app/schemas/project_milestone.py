"""
Pydantic v2 schemas for the project-milestone (delivery graph) module.

Shapes consumed and returned by ``app/routers/milestones.py``.

Domain context
--------------
A project is delivered in phases.  Each phase may name one predecessor that
must finish first; the predecessor links of a project always form a forest.
Status moves forward only::

    PENDING → IN_PROGRESS → COMPLETED → ACCEPTED / BILLED
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Input schemas: write operations
# ---------------------------------------------------------------------------


class ProjectMilestoneCreate(BaseModel):
    """Payload for planning a new delivery milestone (POST /).

    When ``planned_revenue`` is omitted the service allocates
    ``project.estimated_budget / (existing milestones + 1)``, rounded to
    the nearest rupiah.

    Attributes:
        project_id: Owning project.
        milestone_number: Ordinal, unique within the project.
        name / name_id: English / Indonesian name.
        description / description_id: English / Indonesian description.
        planned_start_date: Baseline start.
        planned_end_date: Baseline end; must be after the start.
        planned_revenue: Explicit revenue allocation.
        estimated_cost: Cost baseline.
        priority: LOW, MEDIUM, HIGH or CRITICAL.
        predecessor_id: Milestone of the same project that must finish first.
        deliverables: Deliverable list.
        notes / notes_id: English / Indonesian notes.
    """

    project_id: int = Field(..., ge=1, description="ID proyek.")
    milestone_number: int = Field(..., ge=1, description="Nomor urut milestone (unik per proyek).")
    name: str = Field(..., min_length=1, max_length=200, description="Nama milestone (EN).")
    name_id: str | None = Field(default=None, max_length=200, description="Nama milestone (ID).")
    description: str | None = None
    description_id: str | None = None
    planned_start_date: datetime.datetime = Field(..., description="Rencana tanggal mulai.")
    planned_end_date: datetime.datetime = Field(..., description="Rencana tanggal selesai.")
    planned_revenue: Decimal | None = Field(
        default=None,
        ge=0,
        description="Pendapatan yang direncanakan. Kosongkan untuk alokasi otomatis.",
    )
    estimated_cost: Decimal | None = Field(default=None, ge=0, description="Estimasi biaya.")
    priority: str = Field(
        default="MEDIUM",
        pattern="^(LOW|MEDIUM|HIGH|CRITICAL)$",
        description="Prioritas: LOW, MEDIUM, HIGH, CRITICAL.",
    )
    predecessor_id: int | None = Field(default=None, ge=1, description="ID milestone pendahulu.")
    deliverables: list[str] | None = None
    notes: str | None = None
    notes_id: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "project_id": 1,
                "milestone_number": 1,
                "name": "Design Phase",
                "name_id": "Fase Desain",
                "planned_start_date": "2025-02-01T09:00:00+07:00",
                "planned_end_date": "2025-02-28T17:00:00+07:00",
                "priority": "HIGH",
            }
        }
    )


class ProjectMilestoneUpdate(BaseModel):
    """Partial update.  Send ``predecessor_id: null`` to detach a predecessor.

    Status, completion and acceptance are not patchable here; they move
    through the progress, complete, accept and recognize-revenue endpoints.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    name_id: str | None = Field(default=None, max_length=200)
    description: str | None = None
    description_id: str | None = None
    planned_start_date: datetime.datetime | None = None
    planned_end_date: datetime.datetime | None = None
    actual_start_date: datetime.datetime | None = None
    actual_end_date: datetime.datetime | None = None
    planned_revenue: Decimal | None = Field(default=None, ge=0)
    estimated_cost: Decimal | None = Field(default=None, ge=0)
    actual_cost: Decimal | None = Field(default=None, ge=0)
    priority: str | None = Field(default=None, pattern="^(LOW|MEDIUM|HIGH|CRITICAL)$")
    predecessor_id: int | None = Field(default=None, ge=1)
    delay_days: int | None = Field(default=None, ge=0)
    delay_reason: str | None = None
    deliverables: list[str] | None = None
    notes: str | None = None
    notes_id: str | None = None


class ProgressUpdateRequest(BaseModel):
    """Body of PATCH /{id}/progress.  Range is checked by the service."""

    percentage: Decimal = Field(..., description="Persentase penyelesaian 0–100.")


class AcceptMilestoneRequest(BaseModel):
    """Body of POST /{id}/accept."""

    accepted_by: str = Field(
        ..., min_length=1, max_length=200, description="Nama penerima dari pihak klien."
    )


class RecognizeRevenueRequest(BaseModel):
    """Body of POST /{id}/recognize-revenue."""

    completion_percentage: Decimal = Field(..., description="Persentase penyelesaian 0–100.")
    actual_cost: Decimal | None = Field(default=None, ge=0, description="Biaya aktual.")


# ---------------------------------------------------------------------------
# Response schemas: read operations
# ---------------------------------------------------------------------------


class PredecessorStatus(BaseModel):
    id: int
    milestone_number: int
    name: str
    status: str
    completion_percentage: float


class ProjectMilestoneResponse(BaseModel):
    """Stored delivery milestone."""

    id: int
    project_id: int
    milestone_number: int
    name: str
    name_id: str | None = None
    description: str | None = None
    description_id: str | None = None
    planned_start_date: datetime.datetime
    planned_end_date: datetime.datetime
    actual_start_date: datetime.datetime | None = None
    actual_end_date: datetime.datetime | None = None
    planned_revenue: float
    recognized_revenue: float
    remaining_revenue: float
    estimated_cost: float | None = None
    actual_cost: float
    priority: str
    completion_percentage: float
    status: str
    predecessor_id: int | None = None
    predecessor: PredecessorStatus | None = None
    successor_ids: list[int] = []
    delay_days: int | None = None
    delay_reason: str | None = None
    deliverables: list[str] | None = None
    accepted_by: str | None = None
    accepted_at: datetime.datetime | None = None
    notes: str | None = None
    notes_id: str | None = None


class DependencyCheckResponse(BaseModel):
    """Whether a milestone may start, and why not."""

    can_start: bool
    reasons: list[str]
    predecessor_status: PredecessorStatus | None = None


class StatusBreakdown(BaseModel):
    count: int
    revenue: float


class ProjectMilestoneSummaryResponse(BaseModel):
    """Revenue roll-up of one project's milestones.

    Attributes:
        total_planned_revenue: Σ planned revenue.
        total_recognized_revenue: Σ recognised revenue.
        total_remaining_revenue: Σ remaining revenue.
        average_completion: Mean completion percentage.
        milestone_count: Number of milestones.
        by_status: Count and recognised revenue per status.
    """

    project_id: int
    project_number: str
    total_planned_revenue: float
    total_recognized_revenue: float
    total_remaining_revenue: float
    average_completion: float
    milestone_count: int
    by_status: dict[str, StatusBreakdown]
    milestones: list[ProjectMilestoneResponse]
