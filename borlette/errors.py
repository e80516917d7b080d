"""Typed outcomes of ledger operations."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class RejectionReason(str, Enum):
    DRAW_CLOSED = "DRAW_CLOSED"
    NUMBER_BLOCKED = "NUMBER_BLOCKED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    STORAGE_CONFLICT = "STORAGE_CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    NOT_PAYABLE = "NOT_PAYABLE"


class LedgerError(Exception):
    """Base ledger error carrying a taxonomy code and an HTTP status."""

    reason = RejectionReason.STORAGE_CONFLICT
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def code(self) -> str:
        return self.reason.value

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class AdmissionRejected(LedgerError):
    """A bet bundle failed one of the admission rules."""

    status_code = 409


class DrawClosed(AdmissionRejected):
    reason = RejectionReason.DRAW_CLOSED


class NumberBlocked(AdmissionRejected):
    reason = RejectionReason.NUMBER_BLOCKED


class LimitExceeded(AdmissionRejected):
    reason = RejectionReason.LIMIT_EXCEEDED


class InvalidAmount(AdmissionRejected):
    reason = RejectionReason.INVALID_AMOUNT
    status_code = 400


class NotFound(LedgerError):
    reason = RejectionReason.NOT_FOUND
    status_code = 404


class DrawNotFound(NotFound):
    def __init__(self, draw_id: str) -> None:
        super().__init__(f"draw {draw_id} not found")
        self.draw_id = draw_id


class TicketNotFound(NotFound):
    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class AlreadySettled(LedgerError):
    reason = RejectionReason.ALREADY_SETTLED
    status_code = 409


class StorageConflict(LedgerError):
    reason = RejectionReason.STORAGE_CONFLICT
    status_code = 503


class Forbidden(LedgerError):
    reason = RejectionReason.FORBIDDEN
    status_code = 403


class NotPayable(LedgerError):
    reason = RejectionReason.NOT_PAYABLE
    status_code = 409
