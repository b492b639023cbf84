"""InvoiceCounter model — per-month invoice sequence row."""

from sqlalchemy import BigInteger, Column, String

from app.database import Base


class InvoiceCounter(Base):
    """Locked counter backing "INV-YYYYMM-NNN" numbering.

    One row per billing month.  The row is read ``FOR UPDATE`` and
    incremented inside the caller's transaction, so a rolled-back invoice
    returns its number.

    Attributes:
        period: Billing month, "YYYYMM".
        current_value: Last number handed out for the period.
    """

    __tablename__ = "invoice_counter"

    period = Column(String(6), primary_key=True)
    current_value = Column(BigInteger, nullable=False, default=0)
