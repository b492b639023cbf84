"""PaymentMilestone model — one tranche of a quotation's termin pembayaran."""

from sqlalchemy import (
    JSON,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime


class PaymentMilestone(Base):
    """Percentage-based installment of a quotation (termin pembayaran).

    The percentages of a quotation's milestones never sum above 100.  Once
    ``invoice_id`` is stamped the row is immutable and cannot be deleted.

    Attributes:
        id: Primary key.
        quotation_id: FK to Quotation.
        milestone_number: Ordinal 1..n, unique per quotation.
        name: English name, e.g. "Down Payment".
        name_id: Indonesian name, e.g. "Uang Muka".
        description: English description.
        description_id: Indonesian description.
        payment_percentage: Share of the quotation total (0–100).
        payment_amount: ``total_amount × payment_percentage / 100``.
        due_date: Explicit due instant (takes precedence).
        due_days_from_prev: Days after the previous milestone's due date.
        deliverables: JSON list of deliverable descriptions.
        project_milestone_id: Optional FK to the delivery milestone it pays for.
        invoice_id: FK to the generated Invoice (at most one).
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "payment_milestone"
    __table_args__ = (
        UniqueConstraint(
            "quotation_id", "milestone_number", name="uq_payment_milestone_number"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    quotation_id = Column(Integer, ForeignKey("quotation.id"), nullable=False, index=True)
    milestone_number = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False)
    name_id = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    description_id = Column(Text, nullable=True)
    payment_percentage = Column(Numeric(5, 2), nullable=False)
    payment_amount = Column(Numeric(15, 2), nullable=False)
    due_date = Column(TZDateTime, nullable=True)
    due_days_from_prev = Column(Integer, nullable=True)
    deliverables = Column(JSON, nullable=True)
    project_milestone_id = Column(
        Integer, ForeignKey("project_milestone.id"), nullable=True
    )
    invoice_id = Column(
        Integer,
        ForeignKey("invoice.id", use_alter=True, name="fk_payment_milestone_invoice"),
        unique=True,
        nullable=True,
    )
    created_at = Column(TZDateTime, default=func.now(), nullable=False)
    updated_at = Column(TZDateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    quotation = relationship(
        "Quotation", back_populates="payment_milestones", lazy="select"
    )
    project_milestone = relationship(
        "ProjectMilestone", back_populates="payment_milestones", lazy="select"
    )
    invoice = relationship(
        "Invoice", foreign_keys=[invoice_id], lazy="select", post_update=True
    )

    @property
    def is_invoiced(self) -> bool:
        return self.invoice_id is not None
