"""
Application-wide constants for the Termin Pembayaran backend.

Defines domain enumerations, statutory thresholds, and policy values
used across routers, services, and models.
"""

from decimal import Decimal
from typing import Final

# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------

ROLES: Final[list[str]] = [
    "ADMIN",
    "FINANCE",
    "PROJECT_MANAGER",
    "VIEWER",
]

# Roles allowed to author payment schedules and generate invoices
ROLES_FINANCE: Final[tuple[str, ...]] = ("ADMIN", "FINANCE")
# Roles allowed to plan and progress delivery milestones
ROLES_DELIVERY: Final[tuple[str, ...]] = ("ADMIN", "FINANCE", "PROJECT_MANAGER")

# ---------------------------------------------------------------------------
# Quotation payment types
# ---------------------------------------------------------------------------

PAYMENT_TYPES: Final[list[str]] = [
    "FULL_PAYMENT",
    "MILESTONE_BASED",
]

# ---------------------------------------------------------------------------
# Project milestone lifecycle
# ---------------------------------------------------------------------------

MILESTONE_STATUSES: Final[list[str]] = [
    "PENDING",
    "IN_PROGRESS",
    "COMPLETED",
    "ACCEPTED",
    "BILLED",
    "CANCELLED",
]

MILESTONE_PRIORITIES: Final[list[str]] = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]

# Predecessor states that allow a successor to be marked completed
PREDECESSOR_DONE_STATES: Final[frozenset[str]] = frozenset({"COMPLETED", "ACCEPTED"})
# Predecessor states that allow a successor to start
PREDECESSOR_READY_STATES: Final[frozenset[str]] = frozenset({"COMPLETED", "ACCEPTED", "BILLED"})
# States past delivery; progress and completion no longer move them
PROGRESS_LOCKED_STATES: Final[frozenset[str]] = frozenset({"ACCEPTED", "BILLED", "CANCELLED"})

# ---------------------------------------------------------------------------
# Invoice / payment states
# ---------------------------------------------------------------------------

INVOICE_STATUSES: Final[list[str]] = ["DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED"]
PAYMENT_STATUSES: Final[list[str]] = ["PENDING", "COMPLETED", "FAILED", "REFUNDED"]

# ---------------------------------------------------------------------------
# Statutory thresholds: Bea Meterai (UU No. 10/2020)
# ---------------------------------------------------------------------------

MATERAI_THRESHOLD: Final[Decimal] = Decimal("5000000")
MATERAI_AMOUNT: Final[Decimal] = Decimal("10000")

# ---------------------------------------------------------------------------
# Invoicing policy
# ---------------------------------------------------------------------------

DEFAULT_INVOICE_DUE_DAYS: Final[int] = 30
INVOICE_NUMBER_PREFIX: Final[str] = "INV"

# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

# Uninvoiced revenue is forecast at 90 % of plan
UNINVOICED_FORECAST_FACTOR: Final[Decimal] = Decimal("0.9")

TIME_RANGE_DAYS: Final[dict[str, int]] = {
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
DEFAULT_TIME_RANGE: Final[str] = "90d"
