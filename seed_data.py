"""Seed data script for the Termin Pembayaran database.

Populates the database with a small demo portfolio: users, two clients, two
projects with delivery milestones, milestone-based quotations with payment
schedules, one generated invoice and its payment.  Milestones, schedules and
invoices are created through the service layer so every business rule
(allocation, percentage cap, reconciliation, numbering) applies.

The script is idempotent: each step checks for existing records first.

Usage (from the repository root, after ``alembic upgrade head``):
    python seed_data.py
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

# Ensure the app package is importable when running from the repository root
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.database import SessionLocal  # noqa: E402
from app.models import (  # noqa: E402
    Client,
    PaymentMilestone,
    Project,
    ProjectMilestone,
    Quotation,
    User,
)
from app.schemas.payment_milestone import PaymentMilestoneCreate  # noqa: E402
from app.schemas.project_milestone import ProjectMilestoneCreate  # noqa: E402
from app.services import (  # noqa: E402
    invoice_service,
    payment_milestone_service,
    project_milestone_service,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

JKT = ZoneInfo("Asia/Jakarta")
TAHUN = 2025


def _dt(month: int, day: int, hour: int = 0) -> datetime:
    """Shorthand aware datetime on the Jakarta calendar."""
    return datetime(TAHUN, month, day, hour, tzinfo=JKT)


# ---------------------------------------------------------------------------
# Seed functions
# ---------------------------------------------------------------------------


def seed_users(session) -> User:
    """Insert 3 users if they do not already exist; return the finance user."""
    if session.query(User).count() > 0:
        print("  [SKIP] User — table already has data.")
        return session.query(User).filter(User.role == "FINANCE").first()

    rows = [
        User(username="admin", email="admin@termin.co.id", full_name="Dewi Lestari", role="ADMIN"),
        User(username="keuangan", email="keuangan@termin.co.id", full_name="Agus Wijaya", role="FINANCE"),
        User(username="pm", email="pm@termin.co.id", full_name="Rina Kusuma", role="PROJECT_MANAGER"),
    ]
    session.add_all(rows)
    session.commit()
    print(f"  [OK] User — {len(rows)} data ditambahkan.")
    return rows[1]


def seed_portfolio(session) -> list[Quotation]:
    """Insert clients, projects and milestone-based quotations."""
    if session.query(Quotation).count() > 0:
        print("  [SKIP] Client/Project/Quotation — tables already have data.")
        return session.query(Quotation).order_by(Quotation.id).all()

    maju = Client(name="PT Maju Bersama", email="keuangan@majubersama.co.id", tax_id="01.234.567.8-901.000")
    sinar = Client(name="CV Sinar Abadi", email="admin@sinarabadi.co.id")
    session.add_all([maju, sinar])
    session.flush()

    erp = Project(
        number=f"PRJ-{TAHUN}-001",
        description="Implementasi ERP gudang",
        client_id=maju.id,
        status="IN_PROGRESS",
        start_date=_dt(1, 6),
        end_date=_dt(6, 30),
        estimated_budget=Decimal("150000000"),
    )
    web = Project(
        number=f"PRJ-{TAHUN}-002",
        description="Portal pelanggan",
        client_id=sinar.id,
        status="PLANNING",
        start_date=_dt(3, 1),
        end_date=_dt(8, 31),
        estimated_budget=Decimal("48000000"),
    )
    session.add_all([erp, web])
    session.flush()

    rows = [
        Quotation(
            number=f"QUO-{TAHUN}-001",
            client_id=maju.id,
            project_id=erp.id,
            total_amount=Decimal("150000000"),
            payment_type="MILESTONE_BASED",
            status="APPROVED",
            terms="Pembayaran via transfer bank ke rekening BCA.",
        ),
        Quotation(
            number=f"QUO-{TAHUN}-002",
            client_id=sinar.id,
            project_id=web.id,
            total_amount=Decimal("47999999.99"),
            payment_type="MILESTONE_BASED",
            status="APPROVED",
        ),
    ]
    session.add_all(rows)
    session.commit()
    print(f"  [OK] Client/Project/Quotation — {len(rows)} quotation ditambahkan.")
    return rows


def seed_project_milestones(session, quotations: list[Quotation]) -> None:
    """Plan three sequential phases per project (revenue auto-allocated)."""
    if session.query(ProjectMilestone).count() > 0:
        print("  [SKIP] ProjectMilestone — table already has data.")
        return

    phases = [("Design", "Desain"), ("Development", "Pengembangan"), ("Go-Live", "Peluncuran")]
    total = 0
    for quotation in quotations:
        project = quotation.project
        start = project.start_date
        predecessor_id = None
        for number, (name, name_id) in enumerate(phases, start=1):
            milestone = project_milestone_service.create_milestone(
                session,
                ProjectMilestoneCreate(
                    project_id=project.id,
                    milestone_number=number,
                    name=name,
                    name_id=name_id,
                    planned_start_date=start,
                    planned_end_date=start + timedelta(days=45),
                    priority="HIGH" if number == 1 else "MEDIUM",
                    predecessor_id=predecessor_id,
                ),
            )
            predecessor_id = milestone.id
            start = start + timedelta(days=45)
            total += 1
    print(f"  [OK] ProjectMilestone — {total} data ditambahkan.")


def seed_payment_schedules(session, quotations: list[Quotation]) -> None:
    """30 / 40 / 30 schedule per quotation, each tranche linked to its phase."""
    if session.query(PaymentMilestone).count() > 0:
        print("  [SKIP] PaymentMilestone — table already has data.")
        return

    split = [
        (1, "Down Payment", "Uang Muka", Decimal("30")),
        (2, "Progress Payment", "Pembayaran Progres", Decimal("40")),
        (3, "Final Payment", "Pelunasan", Decimal("30")),
    ]
    total = 0
    for quotation in quotations:
        phases = {m.milestone_number: m.id for m in quotation.project.milestones}
        for number, name, name_id, percentage in split:
            payment_milestone_service.add_milestone(
                session,
                quotation.id,
                PaymentMilestoneCreate(
                    milestone_number=number,
                    name=name,
                    name_id=name_id,
                    payment_percentage=percentage,
                    due_date=_dt(2, 15) if number == 1 else None,
                    due_days_from_prev=None if number == 1 else 45,
                    project_milestone_id=phases.get(number),
                ),
            )
            total += 1
        valid = payment_milestone_service.validate_quotation_milestones(session, quotation.id)
        print(f"  [OK] {quotation.number} — jadwal valid: {valid}")
    print(f"  [OK] PaymentMilestone — {total} data ditambahkan.")


def seed_first_invoice(session, quotations: list[Quotation], finance: User) -> None:
    """Bill the down payment of the first quotation and record its payment."""
    first = (
        session.query(PaymentMilestone)
        .filter(
            PaymentMilestone.quotation_id == quotations[0].id,
            PaymentMilestone.milestone_number == 1,
        )
        .one()
    )
    if first.invoice_id is not None:
        print("  [SKIP] Invoice — down payment already invoiced.")
        return

    invoice = payment_milestone_service.generate_milestone_invoice(session, first.id, finance.id)
    invoice_service.record_payment(
        session,
        invoice.id,
        Decimal(invoice.total_amount),
        invoice.creation_date + timedelta(days=9),
    )
    print(f"  [OK] Invoice — {invoice.invoice_number} dibuat dan dibayar.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    print("=" * 60)
    print("  Termin Pembayaran — Seed Data Script")
    print(f"  Tahun: {TAHUN}")
    print("=" * 60)

    session = SessionLocal()
    try:
        print("\n[1/5] Users...")
        finance = seed_users(session)

        print("\n[2/5] Clients, Projects, Quotations...")
        quotations = seed_portfolio(session)

        print("\n[3/5] Project Milestones...")
        seed_project_milestones(session, quotations)

        print("\n[4/5] Payment Milestones...")
        seed_payment_schedules(session, quotations)

        print("\n[5/5] Invoice + Payment...")
        seed_first_invoice(session, quotations, finance)

        print("\n" + "=" * 60)
        print("  Seed selesai.")
        print("=" * 60)

    except Exception as exc:
        session.rollback()
        print("\n[ERROR] Seed gagal — rollback dilakukan.")
        print(f"  Detail: {exc}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
