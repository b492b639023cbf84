"""Invoice model — written by the invoice sink, read by analytics."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime


class Invoice(Base):
    """Billing document sent to a client.

    Attributes:
        id: Primary key.
        invoice_number: "INV-YYYYMM-NNN", drawn from ``invoice_counter``.
        quotation_id: FK to Quotation.
        project_id: FK to Project.
        client_id: FK to Client.
        payment_milestone_id: Originating PaymentMilestone; unique.
        total_amount: Invoiced amount in IDR.
        due_date: Payment due instant.
        materai_required: Amount exceeds the Bea Meterai threshold.
        materai_amount: Stamp duty value when required.
        materai_applied: Stamp physically/electronically affixed.
        status: "DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED".
        terms: Payment terms copied from the quotation.
        created_by: FK to the User who generated it.
        creation_date: Issue instant; start of the payment cycle.
    """

    __tablename__ = "invoice"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(30), unique=True, nullable=False)
    quotation_id = Column(Integer, ForeignKey("quotation.id"), nullable=True)
    project_id = Column(Integer, ForeignKey("project.id"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("client.id"), nullable=True)
    payment_milestone_id = Column(
        Integer, ForeignKey("payment_milestone.id"), unique=True, nullable=True
    )
    total_amount = Column(Numeric(15, 2), nullable=False)
    due_date = Column(TZDateTime, nullable=False)
    materai_required = Column(Boolean, nullable=False, default=False)
    materai_amount = Column(Numeric(15, 2), nullable=True)
    materai_applied = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="DRAFT")
    terms = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("user.id"), nullable=True)
    creation_date = Column(TZDateTime, default=func.now(), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="invoices", lazy="select")
    payment_milestone = relationship(
        "PaymentMilestone", foreign_keys=[payment_milestone_id], lazy="select"
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        order_by="Payment.payment_date",
        lazy="select",
        cascade="all, delete-orphan",
    )
