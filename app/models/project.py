"""Project model — the delivery engagement a quotation is sold against."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.database import Base, TZDateTime


class Project(Base):
    """A client engagement whose budget is split across delivery milestones.

    Attributes:
        id: Primary key.
        number: Unique project code, e.g. "PRJ-2025-001".
        description: Short description of the engagement.
        client_id: FK to Client.
        status: "PLANNING", "IN_PROGRESS", "COMPLETED", "CANCELLED".
        start_date: Planned start instant.
        end_date: Planned end instant.
        estimated_budget: Budget used to auto-allocate milestone revenue.
    """

    __tablename__ = "project"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(50), unique=True, nullable=False)
    description = Column(String(1000), nullable=True)
    client_id = Column(Integer, ForeignKey("client.id"), nullable=False)
    status = Column(String(30), nullable=False, default="PLANNING")
    start_date = Column(TZDateTime, nullable=True)
    end_date = Column(TZDateTime, nullable=True)
    estimated_budget = Column(Numeric(15, 2), nullable=True)

    # Relationships
    client = relationship("Client", back_populates="projects", lazy="select")
    quotations = relationship("Quotation", back_populates="project", lazy="select")
    milestones = relationship(
        "ProjectMilestone",
        back_populates="project",
        order_by="ProjectMilestone.milestone_number",
        lazy="select",
    )
    invoices = relationship(
        "Invoice",
        back_populates="project",
        order_by="Invoice.id",
        lazy="select",
    )
    expenses = relationship("Expense", back_populates="project", lazy="select")
