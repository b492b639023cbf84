"""
Payment milestone (termin pembayaran) router.

Mounts under ``/api/payment-milestones`` (prefix set in ``main.py``).

All endpoints require a valid JWT token (``get_current_user`` dependency).
Write operations additionally require the ``ADMIN`` or ``FINANCE`` role.

Endpoints
---------
GET    /quotation/{quotation_id}              — Schedule of a quotation.
POST   /quotation/{quotation_id}              — Add a tranche (ADMIN | FINANCE).
GET    /quotation/{quotation_id}/validate     — Is the schedule exactly 100 %?
GET    /quotation/{quotation_id}/progress     — Invoicing progress.
POST   /quotation/{quotation_id}/recalculate  — Recompute amounts (ADMIN | FINANCE).
GET    /{id}                                  — Tranche detail.
PUT    /{id}                                  — Partial update (ADMIN | FINANCE).
DELETE /{id}                                  — Delete un-invoiced tranche (ADMIN | FINANCE).
POST   /{id}/generate-invoice                 — Bill the tranche (ADMIN | FINANCE).
POST   /{id}/link                             — Link to a project milestone (ADMIN | FINANCE).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.invoice import InvoiceResponse
from app.schemas.payment_milestone import (
    LinkProjectMilestoneRequest,
    MilestoneValidationResponse,
    PaymentMilestoneCreate,
    PaymentMilestoneResponse,
    PaymentMilestoneUpdate,
    PaymentProgressResponse,
)
from app.services import invoice_service, payment_milestone_service
from app.services.auth_service import get_current_user, require_role
from app.utils.constants import ROLES_FINANCE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Termin Pembayaran"])

_FinanceUser = Annotated[User, Depends(require_role(*ROLES_FINANCE))]


# ---------------------------------------------------------------------------
# GET /quotation/{quotation_id}
# ---------------------------------------------------------------------------


@router.get(
    "/quotation/{quotation_id}",
    response_model=list[PaymentMilestoneResponse],
    summary="Daftar termin pembayaran quotation",
    description="Mengembalikan seluruh termin pembayaran quotation, diurutkan menurut nomor termin.",
    responses={
        200: {"description": "Daftar termin."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Quotation tidak ditemukan."},
    },
)
def list_milestones(
    quotation_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[PaymentMilestoneResponse]:
    logger.debug("GET /payment-milestones/quotation/%d", quotation_id)
    return payment_milestone_service.list_milestones(db, quotation_id)


# ---------------------------------------------------------------------------
# POST /quotation/{quotation_id}
# ---------------------------------------------------------------------------


@router.post(
    "/quotation/{quotation_id}",
    response_model=PaymentMilestoneResponse,
    status_code=201,
    summary="Tambah termin pembayaran",
    description=(
        "Menambahkan termin ke quotation. Nominal dihitung dari total quotation "
        "× persentase / 100. Total persentase seluruh termin tidak boleh melebihi 100%. "
        "Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        201: {"description": "Termin berhasil dibuat."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Quotation atau milestone proyek tidak ditemukan."},
        409: {"description": "Nomor termin sudah digunakan."},
        422: {"description": "Total persentase melebihi 100% atau data tidak valid."},
    },
)
def add_milestone(
    quotation_id: int,
    data: PaymentMilestoneCreate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _FinanceUser,
) -> PaymentMilestoneResponse:
    """Add a tranche to a quotation's schedule.

    Args:
        quotation_id: Owning quotation.
        data: Validated creation payload.
        db: Database session.
        _current_user: Authenticated user with ADMIN or FINANCE role.

    Returns:
        The created ``PaymentMilestoneResponse`` (HTTP 201).
    """
    logger.info(
        "POST /payment-milestones/quotation/%d number=%d pct=%s user=%s",
        quotation_id, data.milestone_number, data.payment_percentage, _current_user.username,
    )
    milestone = payment_milestone_service.add_milestone(db, quotation_id, data)
    return payment_milestone_service.get_detail(db, milestone.id)


# ---------------------------------------------------------------------------
# GET /quotation/{quotation_id}/validate
# ---------------------------------------------------------------------------


@router.get(
    "/quotation/{quotation_id}/validate",
    response_model=MilestoneValidationResponse,
    summary="Validasi kelengkapan termin",
    description="Valid bila quotation memiliki minimal satu termin dan total persentasenya tepat 100%.",
    responses={
        200: {"description": "Hasil validasi."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Quotation tidak ditemukan."},
    },
)
def validate_milestones(
    quotation_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> MilestoneValidationResponse:
    logger.debug("GET /payment-milestones/quotation/%d/validate", quotation_id)
    return payment_milestone_service.get_validation(db, quotation_id)


# ---------------------------------------------------------------------------
# GET /quotation/{quotation_id}/progress
# ---------------------------------------------------------------------------


@router.get(
    "/quotation/{quotation_id}/progress",
    response_model=PaymentProgressResponse,
    summary="Progres penagihan termin",
    description=(
        "Jumlah termin, termin yang sudah ditagih, persentase tertagih (dibulatkan), "
        "total, nominal tertagih dan sisa tagihan, beserta ringkasan per termin."
    ),
    responses={
        200: {"description": "Ringkasan progres."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Quotation tidak ditemukan."},
    },
)
def get_progress(
    quotation_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> PaymentProgressResponse:
    logger.debug("GET /payment-milestones/quotation/%d/progress", quotation_id)
    return payment_milestone_service.get_progress(db, quotation_id)


# ---------------------------------------------------------------------------
# POST /quotation/{quotation_id}/recalculate
# ---------------------------------------------------------------------------


@router.post(
    "/quotation/{quotation_id}/recalculate",
    response_model=list[PaymentMilestoneResponse],
    summary="Hitung ulang nominal termin",
    description=(
        "Dipanggil setelah total quotation berubah. Nominal setiap termin yang belum "
        "ditagih dihitung ulang dari persentasenya; persentase tidak diubah. "
        "Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        200: {"description": "Termin setelah perhitungan ulang."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Quotation tidak ditemukan."},
    },
)
def recalculate_amounts(
    quotation_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _FinanceUser,
) -> list[PaymentMilestoneResponse]:
    logger.info(
        "POST /payment-milestones/quotation/%d/recalculate user=%s",
        quotation_id, _current_user.username,
    )
    payment_milestone_service.recalculate_milestone_amounts(db, quotation_id)
    return payment_milestone_service.list_milestones(db, quotation_id)


# ---------------------------------------------------------------------------
# GET /{id}
# ---------------------------------------------------------------------------


@router.get(
    "/{milestone_id}",
    response_model=PaymentMilestoneResponse,
    summary="Detail termin pembayaran",
    responses={
        200: {"description": "Detail termin."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Termin tidak ditemukan."},
    },
)
def get_milestone(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> PaymentMilestoneResponse:
    logger.debug("GET /payment-milestones/%d", milestone_id)
    return payment_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# PUT /{id}
# ---------------------------------------------------------------------------


@router.put(
    "/{milestone_id}",
    response_model=PaymentMilestoneResponse,
    summary="Ubah termin pembayaran",
    description=(
        "Perubahan parsial. Nominal selalu dihitung ulang dari persentase terhadap total "
        "quotation saat ini. Termin yang sudah ditagih tidak dapat diubah. "
        "Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        200: {"description": "Termin berhasil diubah."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Termin tidak ditemukan."},
        409: {"description": "Termin sudah ditagih atau nomor termin sudah digunakan."},
        422: {"description": "Total persentase melebihi 100%."},
    },
)
def update_milestone(
    milestone_id: int,
    data: PaymentMilestoneUpdate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _FinanceUser,
) -> PaymentMilestoneResponse:
    """Apply a partial update to a tranche.

    Raises:
        HTTPException 409: Tranche already invoiced or number taken.
        HTTPException 422: Percentages would exceed 100.
    """
    logger.info("PUT /payment-milestones/%d user=%s", milestone_id, _current_user.username)
    payment_milestone_service.update_milestone(db, milestone_id, data)
    return payment_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# DELETE /{id}
# ---------------------------------------------------------------------------


@router.delete(
    "/{milestone_id}",
    response_model=MessageResponse,
    summary="Hapus termin pembayaran",
    description="Hanya termin yang belum ditagih yang dapat dihapus. Memerlukan peran ADMIN atau FINANCE.",
    responses={
        200: {"description": "Termin berhasil dihapus."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Termin tidak ditemukan."},
        409: {"description": "Termin sudah memiliki invoice."},
    },
)
def remove_milestone(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _FinanceUser,
) -> MessageResponse:
    logger.info("DELETE /payment-milestones/%d user=%s", milestone_id, _current_user.username)
    payment_milestone_service.remove_milestone(db, milestone_id)
    return MessageResponse(message=f"Termin {milestone_id} berhasil dihapus.")


# ---------------------------------------------------------------------------
# POST /{id}/generate-invoice
# ---------------------------------------------------------------------------


@router.post(
    "/{milestone_id}/generate-invoice",
    response_model=InvoiceResponse,
    status_code=201,
    summary="Buat invoice dari termin",
    description=(
        "Membuat invoice untuk termin dan menautkannya kembali dalam satu transaksi. "
        "Jatuh tempo: tanggal eksplisit termin; atau N hari setelah jatuh tempo termin "
        "sebelumnya; atau 30 hari dari sekarang. Bea meterai wajib bila nominal di atas "
        "Rp 5.000.000. Tidak idempoten: termin yang sudah ditagih menghasilkan 409. "
        "Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        201: {"description": "Invoice berhasil dibuat."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Termin tidak ditemukan."},
        409: {"description": "Termin sudah memiliki invoice."},
    },
)
def generate_invoice(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: _FinanceUser,
) -> InvoiceResponse:
    """Bill a tranche.

    Args:
        milestone_id: Tranche to bill.
        db: Database session.
        current_user: Recorded as the invoice creator.

    Returns:
        The generated ``InvoiceResponse`` (HTTP 201).
    """
    logger.info(
        "POST /payment-milestones/%d/generate-invoice user=%s",
        milestone_id, current_user.username,
    )
    invoice = payment_milestone_service.generate_milestone_invoice(
        db, milestone_id, current_user.id
    )
    return invoice_service.build_invoice_response(invoice)


# ---------------------------------------------------------------------------
# POST /{id}/link
# ---------------------------------------------------------------------------


@router.post(
    "/{milestone_id}/link",
    response_model=PaymentMilestoneResponse,
    summary="Tautkan termin ke milestone proyek",
    description=(
        "Menautkan termin pembayaran ke milestone proyek yang dibayarnya. "
        "Milestone proyek harus berasal dari proyek quotation. "
        "Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        200: {"description": "Termin berhasil ditautkan."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Termin atau milestone proyek tidak ditemukan."},
        409: {"description": "Termin sudah memiliki invoice."},
        422: {"description": "Milestone proyek berasal dari proyek lain."},
    },
)
def link_to_project_milestone(
    milestone_id: int,
    data: LinkProjectMilestoneRequest,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _FinanceUser,
) -> PaymentMilestoneResponse:
    logger.info(
        "POST /payment-milestones/%d/link project_milestone=%d user=%s",
        milestone_id, data.project_milestone_id, _current_user.username,
    )
    payment_milestone_service.link_to_project_milestone(
        db, milestone_id, data.project_milestone_id
    )
    return payment_milestone_service.get_detail(db, milestone_id)
