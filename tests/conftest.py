"""
Pytest fixtures for the Termin Pembayaran test suite.

Provides:
- An in-memory SQLite database per test (``StaticPool`` so every connection
  sees the same memory database, including TestClient worker threads)
- Factory fixtures for the collaborator rows (user, client, project,
  quotation) the milestone services read
- A FastAPI ``TestClient`` whose ``get_db`` is bound to the test session and
  bearer headers minted for a real ``User`` row
"""

import datetime
import os
from decimal import Decimal
from zoneinfo import ZoneInfo

# Settings are read on first import of ``app``; point them at SQLite so the
# PostgreSQL driver is never needed in tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base, get_db
from app.models.client import Client
from app.models.project import Project
from app.models.quotation import Quotation
from app.models.user import User
from app.utils.security import create_access_token

JAKARTA = ZoneInfo("Asia/Jakarta")


def jkt(year: int, month: int, day: int, hour: int = 0) -> datetime.datetime:
    """Aware datetime on the business calendar."""
    return datetime.datetime(year, month, day, hour, tzinfo=JAKARTA)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine) -> Session:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db):
    def _make(username: str = "finance", role: str = "FINANCE", is_active: bool = True) -> User:
        user = User(
            username=username,
            email=f"{username}@example.co.id",
            full_name=username.title(),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def client_row(db) -> Client:
    row = Client(name="PT Maju Bersama", email="keuangan@majubersama.co.id")
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def make_project(db, client_row):
    counter = {"n": 0}

    def _make(estimated_budget: Decimal | None = Decimal("50000000"), **kwargs) -> Project:
        counter["n"] += 1
        project = Project(
            number=kwargs.pop("number", f"PRJ-2025-{counter['n']:03d}"),
            description=kwargs.pop("description", "Implementasi sistem"),
            client_id=client_row.id,
            status=kwargs.pop("status", "IN_PROGRESS"),
            start_date=kwargs.pop("start_date", jkt(2025, 1, 1)),
            end_date=kwargs.pop("end_date", jkt(2025, 12, 31)),
            estimated_budget=estimated_budget,
            **kwargs,
        )
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    return _make


@pytest.fixture
def project(make_project) -> Project:
    return make_project()


@pytest.fixture
def make_quotation(db, client_row):
    counter = {"n": 0}

    def _make(
        total_amount: Decimal = Decimal("100000000"),
        project: Project | None = None,
        **kwargs,
    ) -> Quotation:
        counter["n"] += 1
        quotation = Quotation(
            number=kwargs.pop("number", f"QUO-2025-{counter['n']:03d}"),
            client_id=client_row.id,
            project_id=project.id if project is not None else None,
            total_amount=total_amount,
            payment_type=kwargs.pop("payment_type", "MILESTONE_BASED"),
            status=kwargs.pop("status", "APPROVED"),
            terms=kwargs.pop("terms", "Pembayaran via transfer bank."),
            **kwargs,
        )
        db.add(quotation)
        db.commit()
        db.refresh(quotation)
        return quotation

    return _make


@pytest.fixture
def quotation(make_quotation, project) -> Quotation:
    return make_quotation(project=project)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def api(db):
    from app.main import app as fastapi_app

    def _override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    return bearer(user)
