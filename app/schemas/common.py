"""
Shared Pydantic v2 schemas reused across multiple modules.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Generic message envelope for operations that do not return a resource.

    Returned by write operations (DELETE, recalculation) when the caller only
    needs a confirmation, not the full updated resource.

    Attributes:
        message: Short human-readable result summary.
        detail: Optional extended information.
    """

    message: str = Field(..., description="Ringkasan hasil operasi.")
    detail: str | None = Field(
        default=None,
        description="Informasi tambahan (konteks galat, saran, dll.).",
    )
