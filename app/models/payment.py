"""Payment model — money received against an invoice."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.database import Base, TZDateTime


class Payment(Base):
    """A (possibly partial) payment of an invoice.

    Attributes:
        id: Primary key.
        invoice_id: FK to Invoice.
        amount: Amount received in IDR.
        payment_date: Instant the money was received.
        status: "PENDING", "COMPLETED", "FAILED", "REFUNDED".
        method: e.g. "BANK_TRANSFER".
    """

    __tablename__ = "payment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoice.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_date = Column(TZDateTime, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    method = Column(String(50), nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments", lazy="select")
