from typing import Any, List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import (
    SqlAlchemyFestivalRepository,
    SqlAlchemyInvoiceRepository,
    SqlAlchemyReservationRepository,
)
from ..schemas import BillingSummaryRead, InvoicePreview, InvoiceRead, InvoiceUpdate, PaymentStatusUpdate
from ..usecases import invoices as invoice_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="", tags=["invoices"])

_DUPLICATE = "an invoice already exists for this reservation"


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


@router.post(
    "/reservations/{reservation_id}/invoice",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def generate_invoice(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors(_DUPLICATE):
        async with session.begin():
            invoice = await invoice_usecase.generate_invoice(
                festival_repo,
                res_repo,
                invoice_repo,
                reservation_id=reservation_id,
                default_outlet_price=get_settings().default_outlet_price,
            )

    _audit(
        action="invoice.generated",
        reservation_id=invoice.reservation_id,
        invoice_id=invoice.id,
        extra={"number": invoice.number, "total_amount": invoice.total_amount},
    )
    return InvoiceRead.from_db(invoice=invoice)


@router.post("/reservations/{reservation_id}/invoice/refresh", response_model=InvoiceRead)
async def refresh_invoice(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        async with session.begin():
            invoice = await invoice_usecase.refresh_invoice(
                festival_repo,
                res_repo,
                invoice_repo,
                reservation_id=reservation_id,
                default_outlet_price=get_settings().default_outlet_price,
            )

    _audit(
        action="invoice.refreshed",
        reservation_id=invoice.reservation_id,
        invoice_id=invoice.id,
        extra={"total_amount": invoice.total_amount},
    )
    return InvoiceRead.from_db(invoice=invoice)


@router.get("/reservations/{reservation_id}/invoice", response_model=InvoiceRead)
async def get_reservation_invoice(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        invoice = await invoice_usecase.get_invoice_for_reservation(invoice_repo, reservation_id=reservation_id)
    return InvoiceRead.from_db(invoice=invoice)


@router.get("/reservations/{reservation_id}/invoice/preview", response_model=InvoicePreview)
async def preview_invoice(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoicePreview:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        amounts = await invoice_usecase.preview_invoice(
            festival_repo,
            res_repo,
            reservation_id=reservation_id,
            default_outlet_price=get_settings().default_outlet_price,
        )
    return InvoicePreview.from_amounts(amounts)


@router.get("/festivals/{festival_id}/billing-summary", response_model=List[BillingSummaryRead])
async def billing_summary(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[BillingSummaryRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        rows = await invoice_usecase.billing_summary(
            festival_repo,
            res_repo,
            invoice_repo,
            festival_id=festival_id,
            default_outlet_price=get_settings().default_outlet_price,
        )
    return [BillingSummaryRead.from_row(row) for row in rows]


@router.get("/invoices", response_model=List[InvoiceRead])
async def list_invoices(session: AsyncSession = Depends(get_session)) -> list[InvoiceRead]:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    invoices = await invoice_usecase.list_invoices(invoice_repo)
    return [InvoiceRead.from_db(invoice=invoice) for invoice in invoices]


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(
    invoice_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        invoice = await invoice_usecase.get_invoice(invoice_repo, invoice_id=invoice_id)
    return InvoiceRead.from_db(invoice=invoice)


@router.put("/invoices/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(
    payload: InvoiceUpdate,
    invoice_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    lines = None if payload.lines is None else [line.to_line_item() for line in payload.lines]
    with translate_errors():
        async with session.begin():
            invoice = await invoice_usecase.update_invoice(
                invoice_repo,
                invoice_id=invoice_id,
                table_amount=payload.table_amount,
                outlet_amount=payload.outlet_amount,
                discount_amount=payload.discount_amount,
                lines=lines,
            )

    _audit(
        action="invoice.updated",
        reservation_id=invoice.reservation_id,
        invoice_id=invoice.id,
        extra={"total_amount": invoice.total_amount},
    )
    return InvoiceRead.from_db(invoice=invoice)


@router.put("/invoices/{invoice_id}/status", response_model=InvoiceRead)
async def set_payment_status(
    payload: PaymentStatusUpdate,
    invoice_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> InvoiceRead:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        async with session.begin():
            invoice, previous = await invoice_usecase.set_payment_status(
                invoice_repo, invoice_id=invoice_id, status=payload.payment_status
            )

    if previous != invoice.payment_status:
        _audit(
            action="invoice.status_changed",
            reservation_id=invoice.reservation_id,
            invoice_id=invoice.id,
            status_from=previous,
            status_to=invoice.payment_status,
        )
    return InvoiceRead.from_db(invoice=invoice)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        async with session.begin():
            invoice = await invoice_usecase.delete_invoice(invoice_repo, invoice_id=invoice_id)

    _audit(action="invoice.deleted", reservation_id=invoice.reservation_id, invoice_id=invoice.id)
