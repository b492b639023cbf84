"""Client model — customer of the business."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from app.database import Base


class Client(Base):
    """Customer receiving quotations and invoices.

    Attributes:
        id: Primary key.
        name: Legal or trading name.
        email: Contact email.
        phone: Contact phone.
        address: Billing address.
        tax_id: NPWP (Nomor Pokok Wajib Pajak).
    """

    __tablename__ = "client"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(300), nullable=False)
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(1000), nullable=True)
    tax_id = Column(String(30), nullable=True)

    # Relationships
    projects = relationship("Project", back_populates="client", lazy="select")
    quotations = relationship("Quotation", back_populates="client", lazy="select")
