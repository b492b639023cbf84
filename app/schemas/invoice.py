"""Pydantic v2 schemas for invoices produced by the milestone ledger."""

from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict


class PaymentResponse(BaseModel):
    id: int
    amount: float
    payment_date: datetime.datetime
    status: str
    method: str | None = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    """Invoice as returned after generation from a payment milestone."""

    id: int
    invoice_number: str
    quotation_id: int | None = None
    project_id: int | None = None
    client_id: int | None = None
    payment_milestone_id: int | None = None
    total_amount: float
    due_date: datetime.datetime
    materai_required: bool
    materai_amount: float | None = None
    materai_applied: bool
    status: str
    created_by: int | None = None
    creation_date: datetime.datetime
    payments: list[PaymentResponse] = []

    model_config = ConfigDict(from_attributes=True)
