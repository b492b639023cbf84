"""
Pydantic v2 schemas for the payment-milestone (termin pembayaran) module.

These models define the JSON shapes consumed and returned by
``app/routers/payment_milestones.py``.  They are free of SQLAlchemy imports
so that the schema layer stays decoupled from ORM internals.

Domain context
--------------
A MILESTONE_BASED quotation is split into percentage tranches, e.g.:

1. Uang Muka (DP)          30 %
2. Serah Terima Desain     40 %
3. Pelunasan               30 %

Each tranche carries its own due date (absolute, or relative to the previous
tranche) and, once billed, the id of the invoice generated for it.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Input schemas: write operations
# ---------------------------------------------------------------------------


class PaymentMilestoneCreate(BaseModel):
    """Payload for adding a tranche to a quotation.

    Attributes:
        milestone_number: Ordinal, unique within the quotation.
        name: English label.
        name_id: Indonesian label.
        description: English description.
        description_id: Indonesian description.
        payment_percentage: Share of the quotation total, (0, 100].
        due_date: Absolute due instant; wins over ``due_days_from_prev``.
        due_days_from_prev: Days after the previous tranche's due date.
        deliverables: What the client receives for this tranche.
        project_milestone_id: Delivery milestone this tranche pays for.
    """

    milestone_number: int = Field(..., ge=1, description="Nomor urut termin (unik per quotation).")
    name: str = Field(..., min_length=1, max_length=200, description="Nama termin (EN).")
    name_id: str | None = Field(default=None, max_length=200, description="Nama termin (ID).")
    description: str | None = Field(default=None, description="Deskripsi (EN).")
    description_id: str | None = Field(default=None, description="Deskripsi (ID).")
    payment_percentage: Decimal = Field(
        ...,
        gt=0,
        le=100,
        max_digits=5,
        decimal_places=2,
        description="Persentase pembayaran dari total quotation.",
    )
    due_date: datetime.datetime | None = Field(
        default=None, description="Tanggal jatuh tempo eksplisit."
    )
    due_days_from_prev: int | None = Field(
        default=None,
        ge=0,
        description="Jumlah hari setelah jatuh tempo termin sebelumnya.",
    )
    deliverables: list[str] | None = Field(default=None, description="Daftar deliverable.")
    project_milestone_id: int | None = Field(
        default=None, ge=1, description="ID milestone proyek yang terkait."
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "milestone_number": 1,
                "name": "Down Payment",
                "name_id": "Uang Muka",
                "payment_percentage": 30,
                "due_days_from_prev": None,
                "due_date": "2025-02-15T00:00:00+07:00",
                "deliverables": ["Kontrak ditandatangani"],
            }
        }
    )


class PaymentMilestoneUpdate(BaseModel):
    """Partial update of a tranche.  Only explicitly sent fields are written."""

    milestone_number: int | None = Field(default=None, ge=1)
    name: str | None = Field(default=None, min_length=1, max_length=200)
    name_id: str | None = Field(default=None, max_length=200)
    description: str | None = None
    description_id: str | None = None
    payment_percentage: Decimal | None = Field(
        default=None, gt=0, le=100, max_digits=5, decimal_places=2
    )
    due_date: datetime.datetime | None = None
    due_days_from_prev: int | None = Field(default=None, ge=0)
    deliverables: list[str] | None = None


class LinkProjectMilestoneRequest(BaseModel):
    """Body of POST /{id}/link."""

    project_milestone_id: int = Field(..., ge=1, description="ID milestone proyek.")


# ---------------------------------------------------------------------------
# Response schemas: read operations
# ---------------------------------------------------------------------------


class PaymentMilestoneResponse(BaseModel):
    """Stored tranche as returned by list and detail endpoints."""

    id: int
    quotation_id: int
    milestone_number: int
    name: str
    name_id: str | None = None
    description: str | None = None
    description_id: str | None = None
    payment_percentage: float
    payment_amount: float
    due_date: datetime.datetime | None = None
    due_days_from_prev: int | None = None
    deliverables: list[str] | None = None
    project_milestone_id: int | None = None
    invoice_id: int | None = None
    is_invoiced: bool

    model_config = ConfigDict(from_attributes=True)


class MilestoneValidationResponse(BaseModel):
    """Result of checking that a schedule is complete (exactly 100 %)."""

    quotation_id: int
    valid: bool
    total_percentage: float
    milestone_count: int
    message: str


class ProgressMilestoneItem(BaseModel):
    number: int
    name: str
    name_id: str | None = None
    percentage: float
    amount: float
    due_date: datetime.datetime | None = None
    is_invoiced: bool
    invoice_id: int | None = None


class PaymentProgressResponse(BaseModel):
    """Invoicing progress of a quotation's schedule.

    Attributes:
        total_milestones: Number of tranches.
        milestones_invoiced: Tranches with a generated invoice.
        invoiced_percentage: ``milestones_invoiced / total_milestones × 100``,
            rounded to an integer.
        total_amount: Quotation total.
        total_invoiced: Sum of invoiced tranche amounts.
        outstanding_amount: ``total_amount − total_invoiced``.
    """

    quotation_id: int
    total_milestones: int
    milestones_invoiced: int
    invoiced_percentage: int
    total_amount: float
    total_invoiced: float
    outstanding_amount: float
    milestones: list[ProgressMilestoneItem]
