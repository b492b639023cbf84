"""Expense model — cost booked against a project."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.database import Base, TZDateTime


class Expense(Base):
    """Project expense, loaded alongside invoices for analytics.

    Attributes:
        id: Primary key.
        project_id: FK to Project.
        description: What was bought.
        amount: Amount in IDR.
        expense_date: Booking instant.
    """

    __tablename__ = "expense"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("project.id"), nullable=False, index=True)
    description = Column(String(500), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    expense_date = Column(TZDateTime, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="expenses", lazy="select")
