"""User model — identity of the caller, owned by the identity provider."""

from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.sql import func

from app.database import Base, TZDateTime


class User(Base):
    """Authenticated back-office user.

    Only the fields this backend reads are mapped: the JWT ``sub`` claim is
    resolved to a row here, and ``role`` drives write permissions.

    Roles:
        - ADMIN: Full access.
        - FINANCE: Payment schedules, invoicing, revenue recognition.
        - PROJECT_MANAGER: Delivery milestones and progress.
        - VIEWER: Read-only access.

    Attributes:
        id: Primary key.
        username: Unique login name.
        email: Unique email address.
        full_name: Display name.
        role: Role identifier controlling permissions.
        is_active: Whether the account may act.
        created_at: Record creation timestamp.
    """

    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(200), unique=True, nullable=False)
    full_name = Column(String(300), nullable=True)
    role = Column(String(50), nullable=False, default="VIEWER")
    # "ADMIN", "FINANCE", "PROJECT_MANAGER", "VIEWER"
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(TZDateTime, default=func.now(), nullable=False)
