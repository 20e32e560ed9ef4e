from contextlib import contextmanager
from typing import AsyncIterator, Iterator

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .database import async_session
from .domain.errors import (
    CapacityExceeded,
    CrossFestivalMismatch,
    DomainError,
    DuplicateName,
    InsufficientCapacity,
    InvalidStatus,
    InvoiceAlreadyExists,
    InvoicePaid,
    NotFoundError,
    PlanZoneCapacityExceeded,
    ReservationAlreadyExists,
    ReservationBudgetExceeded,
    ZoneInUse,
)

_STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStatus, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DuplicateName, status.HTTP_409_CONFLICT),
    (ZoneInUse, status.HTTP_409_CONFLICT),
    (InvoiceAlreadyExists, status.HTTP_409_CONFLICT),
    (ReservationAlreadyExists, status.HTTP_409_CONFLICT),
    (InvoicePaid, status.HTTP_409_CONFLICT),
    (CapacityExceeded, status.HTTP_409_CONFLICT),
    (InsufficientCapacity, status.HTTP_409_CONFLICT),
    (ReservationBudgetExceeded, status.HTTP_409_CONFLICT),
    (PlanZoneCapacityExceeded, status.HTTP_409_CONFLICT),
    (CrossFestivalMismatch, status.HTTP_409_CONFLICT),
)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def to_http_exception(exc: DomainError) -> HTTPException:
    """Map a domain error to an HTTP error whose detail keeps the structured context."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict())


def bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def audit_failed() -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to record audit log")


@contextmanager
def translate_errors(conflict_detail: str = "conflicts with existing data") -> Iterator[None]:
    """Turn usecase failures raised inside a route into HTTP errors (the transaction rolls back)."""
    try:
        yield
    except DomainError as exc:
        raise to_http_exception(exc) from exc
    except IntegrityError as exc:
        raise conflict(conflict_detail) from exc
    except ValueError as exc:
        raise bad_request(exc) from exc
