"""
Typed domain errors for the milestone subsystem.

Every error is an ``HTTPException`` subclass so services can raise it
directly (the same way the rest of the service layer raises HTTP errors)
while callers and tests can still catch by type instead of by status code.

    NotFoundError          404  quotation / project / milestone / predecessor missing
    DomainValidationError  422  percentage, date, graph or state rule violated
    ConflictError          409  duplicate number, already invoiced
"""

from __future__ import annotations

from fastapi import HTTPException, status


class MilestoneError(HTTPException):
    """Base class for caller-correctable milestone errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code, detail=detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class NotFoundError(MilestoneError):
    status_code = status.HTTP_404_NOT_FOUND


class DomainValidationError(MilestoneError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(MilestoneError):
    status_code = status.HTTP_409_CONFLICT
