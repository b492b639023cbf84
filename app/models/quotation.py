"""Quotation model — priced offer that owns a payment schedule."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base, TZDateTime


class Quotation(Base):
    """Priced offer to a client, optionally split into payment milestones.

    Attributes:
        id: Primary key.
        number: Unique quotation code.
        client_id: FK to Client.
        project_id: FK to Project (nullable for standalone quotes).
        total_amount: Quotation value in IDR.
        payment_type: "FULL_PAYMENT" or "MILESTONE_BASED".
        status: Workflow status ("DRAFT", "SENT", "APPROVED", ...).
        terms: Free-text payment terms carried onto invoices.
        created_at: Record creation timestamp.
    """

    __tablename__ = "quotation"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(50), unique=True, nullable=False)
    client_id = Column(Integer, ForeignKey("client.id"), nullable=False)
    project_id = Column(Integer, ForeignKey("project.id"), nullable=True)
    total_amount = Column(Numeric(15, 2), nullable=False)
    payment_type = Column(String(30), nullable=False, default="FULL_PAYMENT")
    status = Column(String(30), nullable=False, default="DRAFT")
    terms = Column(Text, nullable=True)
    created_at = Column(TZDateTime, default=func.now(), nullable=False)

    # Relationships
    client = relationship("Client", back_populates="quotations", lazy="select")
    project = relationship("Project", back_populates="quotations", lazy="select")
    payment_milestones = relationship(
        "PaymentMilestone",
        back_populates="quotation",
        order_by="PaymentMilestone.milestone_number",
        lazy="select",
        cascade="all, delete-orphan",
    )
