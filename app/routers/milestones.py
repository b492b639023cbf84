"""
Project milestone router.

Mounts under ``/api/milestones`` (prefix set in ``main.py``).

All endpoints require a valid JWT token (``get_current_user`` dependency).
Write operations additionally require one of ``ADMIN``, ``FINANCE`` or
``PROJECT_MANAGER``; revenue recognition is restricted to ``ADMIN`` or
``FINANCE``.

Endpoints
---------
POST   /                               — Plan a milestone.
GET    /project/{project_id}           — Milestones of a project.
GET    /project/{project_id}/summary   — Revenue roll-up of a project.
GET    /analytics                      — Payment-cycle and cash-flow report.
GET    /{id}                           — Milestone detail.
PUT    /{id}                           — Partial update.
DELETE /{id}                           — Delete a milestone with no dependents.
PATCH  /{id}/progress                  — Set completion percentage.
POST   /{id}/complete                  — Mark as completed.
POST   /{id}/accept                    — Record client acceptance.
POST   /{id}/recognize-revenue         — Percentage-of-completion revenue.
GET    /{id}/dependencies              — Can this milestone start?
"""

from __future__ import annotations

import datetime
import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.milestone_analytics import MilestoneAnalyticsQuery, MilestoneAnalyticsResponse
from app.schemas.project_milestone import (
    AcceptMilestoneRequest,
    DependencyCheckResponse,
    ProgressUpdateRequest,
    ProjectMilestoneCreate,
    ProjectMilestoneResponse,
    ProjectMilestoneSummaryResponse,
    ProjectMilestoneUpdate,
    RecognizeRevenueRequest,
)
from app.services import milestone_analytics_service, project_milestone_service
from app.services.auth_service import get_current_user, require_role
from app.utils.constants import ROLES_DELIVERY, ROLES_FINANCE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Milestone Proyek"])

_DeliveryUser = Annotated[User, Depends(require_role(*ROLES_DELIVERY))]


# ---------------------------------------------------------------------------
# Shared dependencies: analytics query params
# ---------------------------------------------------------------------------


def _analytics_params(
    project_id: Annotated[
        int | None, Query(description="ID proyek. Kosongkan untuk semua proyek.", ge=1)
    ] = None,
    start_date: Annotated[
        datetime.datetime | None,
        Query(description="Awal periode (tanggal selesai rencana). Mengalahkan time_range."),
    ] = None,
    end_date: Annotated[
        datetime.datetime | None, Query(description="Akhir periode. Bawaan: sekarang.")
    ] = None,
    time_range: Annotated[
        Literal["30d", "90d", "1y"], Query(description="Rentang waktu: 30d, 90d, 1y.")
    ] = "90d",
) -> MilestoneAnalyticsQuery:
    """Assemble ``MilestoneAnalyticsQuery`` from URL query strings."""
    return MilestoneAnalyticsQuery(
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        time_range=time_range,
    )


# ---------------------------------------------------------------------------
# POST /
# ---------------------------------------------------------------------------


@router.post(
    "/",
    response_model=ProjectMilestoneResponse,
    status_code=201,
    summary="Buat milestone proyek",
    description=(
        "Merencanakan milestone baru. Bila pendapatan tidak diisi, anggaran proyek "
        "dibagi rata ke (jumlah milestone yang ada + 1) dan dibulatkan ke rupiah terdekat; "
        "milestone sebelumnya tidak diubah. Memerlukan peran ADMIN, FINANCE atau PROJECT_MANAGER."
    ),
    responses={
        201: {"description": "Milestone berhasil dibuat."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Proyek atau milestone pendahulu tidak ditemukan."},
        409: {"description": "Nomor milestone sudah digunakan pada proyek."},
        422: {"description": "Tanggal tidak valid atau pendahulu dari proyek lain."},
    },
)
def create_milestone(
    data: ProjectMilestoneCreate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> ProjectMilestoneResponse:
    """Plan a new delivery milestone.

    Args:
        data: Validated creation payload.
        db: Database session.
        _current_user: Authenticated user with a delivery role.

    Returns:
        The created ``ProjectMilestoneResponse`` (HTTP 201).
    """
    logger.info(
        "POST /milestones/ project=%d number=%d user=%s",
        data.project_id, data.milestone_number, _current_user.username,
    )
    milestone = project_milestone_service.create_milestone(db, data)
    return project_milestone_service.get_detail(db, milestone.id)


# ---------------------------------------------------------------------------
# GET /project/{project_id}
# ---------------------------------------------------------------------------


@router.get(
    "/project/{project_id}",
    response_model=list[ProjectMilestoneResponse],
    summary="Daftar milestone proyek",
    responses={
        200: {"description": "Daftar milestone, diurutkan menurut nomor."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Proyek tidak ditemukan."},
    },
)
def list_by_project(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[ProjectMilestoneResponse]:
    logger.debug("GET /milestones/project/%d", project_id)
    return project_milestone_service.list_by_project(db, project_id)


# ---------------------------------------------------------------------------
# GET /project/{project_id}/summary
# ---------------------------------------------------------------------------


@router.get(
    "/project/{project_id}/summary",
    response_model=ProjectMilestoneSummaryResponse,
    summary="Ringkasan pendapatan milestone proyek",
    description=(
        "Total pendapatan rencana, diakui dan sisa, rata-rata penyelesaian, "
        "serta jumlah dan pendapatan diakui per status."
    ),
    responses={
        200: {"description": "Ringkasan proyek."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Proyek tidak ditemukan."},
    },
)
def get_project_summary(
    project_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> ProjectMilestoneSummaryResponse:
    logger.debug("GET /milestones/project/%d/summary", project_id)
    return project_milestone_service.get_project_summary(db, project_id)


# ---------------------------------------------------------------------------
# GET /analytics
# ---------------------------------------------------------------------------


@router.get(
    "/analytics",
    response_model=MilestoneAnalyticsResponse,
    summary="Analitik milestone",
    description=(
        "Siklus pembayaran rata-rata, tingkat pembayaran tepat waktu, tingkat pengakuan "
        "pendapatan, profitabilitas per fase, proyeksi arus kas bulanan dan status "
        "penagihan per milestone. Milestone dipilih menurut tanggal selesai rencana."
    ),
    responses={
        200: {"description": "Laporan analitik."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
    },
)
def get_analytics(
    query: Annotated[MilestoneAnalyticsQuery, Depends(_analytics_params)],
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> MilestoneAnalyticsResponse:
    """Return the milestone analytics report.

    Args:
        query: Project and date-window filters.
        db: Database session.
        _current_user: Authenticated user guard.
    """
    logger.debug("GET /milestones/analytics query=%s", query)
    return milestone_analytics_service.get_analytics(db, query)


# ---------------------------------------------------------------------------
# GET /{id}
# ---------------------------------------------------------------------------


@router.get(
    "/{milestone_id}",
    response_model=ProjectMilestoneResponse,
    summary="Detail milestone proyek",
    responses={
        200: {"description": "Detail milestone beserta status pendahulu."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Milestone tidak ditemukan."},
    },
)
def get_milestone(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> ProjectMilestoneResponse:
    logger.debug("GET /milestones/%d", milestone_id)
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# PUT /{id}
# ---------------------------------------------------------------------------


@router.put(
    "/{milestone_id}",
    response_model=ProjectMilestoneResponse,
    summary="Ubah milestone proyek",
    description=(
        "Perubahan parsial. Pendahulu baru divalidasi (proyek sama, tanpa ketergantungan "
        "melingkar); kirim predecessor_id null untuk melepas. Tanggal aktual selesai "
        "menghitung hari keterlambatan."
    ),
    responses={
        200: {"description": "Milestone berhasil diubah."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Milestone atau pendahulu tidak ditemukan."},
        422: {"description": "Ketergantungan melingkar, pendahulu dari proyek lain, atau tanggal tidak valid."},
    },
)
def update_milestone(
    milestone_id: int,
    data: ProjectMilestoneUpdate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> ProjectMilestoneResponse:
    logger.info("PUT /milestones/%d user=%s", milestone_id, _current_user.username)
    project_milestone_service.update_milestone(db, milestone_id, data)
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# DELETE /{id}
# ---------------------------------------------------------------------------


@router.delete(
    "/{milestone_id}",
    response_model=MessageResponse,
    summary="Hapus milestone proyek",
    description="Milestone yang masih menjadi pendahulu milestone lain tidak dapat dihapus.",
    responses={
        200: {"description": "Milestone berhasil dihapus."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Milestone tidak ditemukan."},
        422: {"description": "Milestone masih memiliki penerus."},
    },
)
def remove_milestone(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> MessageResponse:
    logger.info("DELETE /milestones/%d user=%s", milestone_id, _current_user.username)
    project_milestone_service.remove_milestone(db, milestone_id)
    return MessageResponse(message=f"Milestone {milestone_id} berhasil dihapus.")


# ---------------------------------------------------------------------------
# PATCH /{id}/progress
# ---------------------------------------------------------------------------


@router.patch(
    "/{milestone_id}/progress",
    response_model=ProjectMilestoneResponse,
    summary="Perbarui progres milestone",
    description=(
        "Status diturunkan dari persentase: 0 → PENDING, 1–99 → IN_PROGRESS, "
        "100 → COMPLETED."
    ),
    responses={
        200: {"description": "Progres diperbarui."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Milestone tidak ditemukan."},
        422: {"description": "Persentase di luar 0–100."},
    },
)
def update_progress(
    milestone_id: int,
    data: ProgressUpdateRequest,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> ProjectMilestoneResponse:
    logger.info(
        "PATCH /milestones/%d/progress pct=%s user=%s",
        milestone_id, data.percentage, _current_user.username,
    )
    project_milestone_service.update_progress(db, milestone_id, data.percentage)
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# POST /{id}/complete
# ---------------------------------------------------------------------------


@router.post(
    "/{milestone_id}/complete",
    response_model=ProjectMilestoneResponse,
    summary="Tandai milestone selesai",
    description="Pendahulu (bila ada) harus berstatus COMPLETED atau ACCEPTED.",
    responses={
        200: {"description": "Milestone ditandai selesai."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Milestone tidak ditemukan."},
        422: {"description": "Pendahulu belum selesai."},
    },
)
def mark_as_completed(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> ProjectMilestoneResponse:
    logger.info("POST /milestones/%d/complete user=%s", milestone_id, _current_user.username)
    project_milestone_service.mark_as_completed(db, milestone_id)
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# POST /{id}/accept
# ---------------------------------------------------------------------------


@router.post(
    "/{milestone_id}/accept",
    response_model=ProjectMilestoneResponse,
    summary="Catat penerimaan klien",
    description="Hanya milestone berstatus COMPLETED yang dapat diterima.",
    responses={
        200: {"description": "Milestone diterima."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi."},
        404: {"description": "Milestone tidak ditemukan."},
        422: {"description": "Milestone belum COMPLETED."},
    },
)
def accept_milestone(
    milestone_id: int,
    data: AcceptMilestoneRequest,
    db: Annotated[Session, Depends(get_db)],
    _current_user: _DeliveryUser,
) -> ProjectMilestoneResponse:
    logger.info(
        "POST /milestones/%d/accept by=%s user=%s",
        milestone_id, data.accepted_by, _current_user.username,
    )
    project_milestone_service.accept_milestone(db, milestone_id, data.accepted_by)
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# POST /{id}/recognize-revenue
# ---------------------------------------------------------------------------


@router.post(
    "/{milestone_id}/recognize-revenue",
    response_model=ProjectMilestoneResponse,
    summary="Akui pendapatan milestone",
    description=(
        "Pengakuan pendapatan berdasarkan persentase penyelesaian: pendapatan diakui "
        "menjadi pendapatan rencana × persentase / 100. Memerlukan peran ADMIN atau FINANCE."
    ),
    responses={
        200: {"description": "Pendapatan diakui."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        403: {"description": "Peran tidak mencukupi (ADMIN atau FINANCE)."},
        404: {"description": "Milestone tidak ditemukan."},
        422: {"description": "Milestone dibatalkan, persentase tidak valid, atau tidak ada pendapatan baru."},
    },
)
def recognize_revenue(
    milestone_id: int,
    data: RecognizeRevenueRequest,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(require_role(*ROLES_FINANCE))],
) -> ProjectMilestoneResponse:
    """Recognise revenue on a milestone by percentage of completion.

    Raises:
        HTTPException 422: Cancelled milestone, percentage outside 0–100,
                           or nothing new to recognise.
    """
    logger.info(
        "POST /milestones/%d/recognize-revenue pct=%s user=%s",
        milestone_id, data.completion_percentage, _current_user.username,
    )
    project_milestone_service.recognize_revenue(
        db, milestone_id, data.completion_percentage, data.actual_cost
    )
    return project_milestone_service.get_detail(db, milestone_id)


# ---------------------------------------------------------------------------
# GET /{id}/dependencies
# ---------------------------------------------------------------------------


@router.get(
    "/{milestone_id}/dependencies",
    response_model=DependencyCheckResponse,
    summary="Periksa ketergantungan milestone",
    description="can_start bernilai true bila tidak ada pendahulu atau pendahulu sudah COMPLETED, ACCEPTED atau BILLED.",
    responses={
        200: {"description": "Hasil pemeriksaan."},
        401: {"description": "Token JWT tidak ada atau tidak valid."},
        404: {"description": "Milestone tidak ditemukan."},
    },
)
def check_dependencies(
    milestone_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> DependencyCheckResponse:
    logger.debug("GET /milestones/%d/dependencies", milestone_id)
    return project_milestone_service.check_dependencies(db, milestone_id)
