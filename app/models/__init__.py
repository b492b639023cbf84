"""SQLAlchemy models package for the Termin Pembayaran backend.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.
The import order follows the foreign-key dependency graph so that parent
tables are always registered before their children.

Usage from other modules:
    from app.models import PaymentMilestone, ProjectMilestone
"""

# Collaborator records (identity, CRM, projects)
from app.models.user import User  # noqa: F401
from app.models.client import Client  # noqa: F401
from app.models.project import Project  # noqa: F401
from app.models.quotation import Quotation  # noqa: F401

# Delivery graph
from app.models.project_milestone import ProjectMilestone  # noqa: F401

# Payment schedule (termin pembayaran)
from app.models.payment_milestone import PaymentMilestone  # noqa: F401

# Invoice / payment sink
from app.models.invoice import Invoice  # noqa: F401
from app.models.invoice_counter import InvoiceCounter  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.expense import Expense  # noqa: F401

__all__ = [
    "User",
    "Client",
    "Project",
    "Quotation",
    "ProjectMilestone",
    "PaymentMilestone",
    "Invoice",
    "InvoiceCounter",
    "Payment",
    "Expense",
]
