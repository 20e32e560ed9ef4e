from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for caller-correctable domain failures.

    `details` carries the structured context (ids, current and requested totals)
    a caller needs to build a message; nothing has been written when one is raised.
    """

    code = "DomainError"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class CapacityExceeded(DomainError):
    code = "CapacityExceeded"


class InsufficientCapacity(DomainError):
    code = "InsufficientCapacity"


class DuplicateName(DomainError):
    code = "DuplicateName"


class ZoneInUse(DomainError):
    code = "ZoneInUse"


class ReservationBudgetExceeded(DomainError):
    code = "ReservationBudgetExceeded"


class PlanZoneCapacityExceeded(DomainError):
    code = "PlanZoneCapacityExceeded"


class CrossFestivalMismatch(DomainError):
    code = "CrossFestivalMismatch"


class InvoiceAlreadyExists(DomainError):
    code = "InvoiceAlreadyExists"


class InvoicePaid(DomainError):
    code = "InvoicePaid"


class InvalidStatus(DomainError):
    code = "InvalidStatus"


class ReservationAlreadyExists(DomainError):
    code = "ReservationAlreadyExists"


class NotFoundError(DomainError):
    code = "NotFound"


class NoSuchFestival(NotFoundError):
    code = "NoSuchFestival"


class NoSuchReservation(NotFoundError):
    code = "NoSuchReservation"


class NoSuchZone(NotFoundError):
    code = "NoSuchZone"


class NoSuchGameInstance(NotFoundError):
    code = "NoSuchGameInstance"


class NoSuchInvoice(NotFoundError):
    code = "NoSuchInvoice"
