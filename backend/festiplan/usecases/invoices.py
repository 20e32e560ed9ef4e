from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from ..domain.errors import InvoiceAlreadyExists, NoSuchInvoice
from ..domain.repositories import FestivalRepository, InvoiceRepository, ReservationRepository
from ..domain.services import (
    CommittedLine,
    InvoiceAmounts,
    LineItem,
    amounts_from_totals,
    compute_invoice,
    ensure_invoice_editable,
    parse_payment_status,
    to_money,
)
from ..models import Festival, Invoice, PaymentStatus, Reservation
from ..utils.time import invoice_number, today_utc
from .festivals import require_festival
from .reservations import require_reservation


@dataclass(frozen=True)
class BillingSummaryRow:
    """What a reservation owes at a festival, next to the invoice issued for it (if any)."""

    reservation: Reservation
    amounts: InvoiceAmounts
    invoice: Invoice | None

    @property
    def table_discount_amount(self) -> Decimal:
        return self.amounts.discount_amount - to_money(self.reservation.amount_discount)


def _outlet_price(festival: Festival, default_outlet_price: Decimal) -> Decimal:
    return festival.outlet_unit_price if festival.outlet_unit_price is not None else default_outlet_price


async def _compute_for(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    reservation: Reservation,
    *,
    default_outlet_price: Decimal,
) -> InvoiceAmounts:
    festival = await require_festival(festival_repo, reservation.festival_id)
    return await _amounts(reservation_repo, reservation, outlet_price=_outlet_price(festival, default_outlet_price))


async def _amounts(
    reservation_repo: ReservationRepository,
    reservation: Reservation,
    *,
    outlet_price: Decimal,
) -> InvoiceAmounts:
    commitments = await reservation_repo.list_commitments(reservation.id)
    return compute_invoice(
        [
            CommittedLine(zone_name=zone_name, table_count=c.table_count, unit_price=c.unit_price)
            for c, zone_name in commitments
        ],
        outlet_count=reservation.outlet_count,
        outlet_unit_price=outlet_price,
        table_discount=reservation.table_discount,
        amount_discount=reservation.amount_discount,
    )


async def preview_invoice(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
    default_outlet_price: Decimal = Decimal("0"),
) -> InvoiceAmounts:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await _compute_for(festival_repo, reservation_repo, reservation, default_outlet_price=default_outlet_price)


async def generate_invoice(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    invoice_repo: InvoiceRepository,
    *,
    reservation_id: int,
    default_outlet_price: Decimal = Decimal("0"),
) -> Invoice:
    reservation = await require_reservation(reservation_repo, reservation_id, for_update=True)
    existing = await invoice_repo.get_by_reservation(reservation.id)
    if existing is not None:
        raise InvoiceAlreadyExists(
            "an invoice already exists for this reservation",
            reservation_id=reservation.id,
            invoice_id=existing.id,
        )
    amounts = await _compute_for(festival_repo, reservation_repo, reservation, default_outlet_price=default_outlet_price)
    return await invoice_repo.create(
        reservation_id=reservation.id,
        number=invoice_number(reservation_id=reservation.id),
        issued_on=today_utc(),
        amounts=amounts,
        status=PaymentStatus.UNPAID,
    )


async def refresh_invoice(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    invoice_repo: InvoiceRepository,
    *,
    reservation_id: int,
    default_outlet_price: Decimal = Decimal("0"),
) -> Invoice:
    """Recomputes an unpaid invoice from the reservation's current commitments and discounts."""
    reservation = await require_reservation(reservation_repo, reservation_id, for_update=True)
    invoice = await invoice_repo.get_by_reservation(reservation.id, for_update=True)
    if invoice is None:
        raise NoSuchInvoice("no invoice for this reservation", reservation_id=reservation.id)
    ensure_invoice_editable(invoice_id=invoice.id, status=invoice.payment_status)
    amounts = await _compute_for(festival_repo, reservation_repo, reservation, default_outlet_price=default_outlet_price)
    return await invoice_repo.replace_amounts(invoice, amounts)


async def require_invoice(invoice_repo: InvoiceRepository, invoice_id: int, *, for_update: bool = False) -> Invoice:
    if for_update:
        invoice = await invoice_repo.get_for_update(invoice_id)
    else:
        invoice = await invoice_repo.get(invoice_id)
    if invoice is None:
        raise NoSuchInvoice("invoice not found", invoice_id=invoice_id)
    return invoice


async def update_invoice(
    invoice_repo: InvoiceRepository,
    *,
    invoice_id: int,
    table_amount: Decimal,
    outlet_amount: Decimal,
    discount_amount: Decimal,
    lines: Sequence[LineItem] | None = None,
) -> Invoice:
    invoice = await require_invoice(invoice_repo, invoice_id, for_update=True)
    ensure_invoice_editable(invoice_id=invoice.id, status=invoice.payment_status)
    amounts = amounts_from_totals(
        table_amount=table_amount,
        outlet_amount=outlet_amount,
        discount_amount=discount_amount,
        lines=lines,
    )
    return await invoice_repo.replace_amounts(invoice, amounts)


async def delete_invoice(invoice_repo: InvoiceRepository, *, invoice_id: int) -> Invoice:
    invoice = await require_invoice(invoice_repo, invoice_id, for_update=True)
    ensure_invoice_editable(invoice_id=invoice.id, status=invoice.payment_status)
    await invoice_repo.delete(invoice)
    return invoice


async def set_payment_status(
    invoice_repo: InvoiceRepository,
    *,
    invoice_id: int,
    status: str,
) -> tuple[Invoice, PaymentStatus]:
    """
    Changes the payment status and returns the invoice with its previous status.
    Leaving `paye` is allowed so a refunded or mis-recorded payment can be corrected.
    """
    new_status = parse_payment_status(status)
    invoice = await require_invoice(invoice_repo, invoice_id, for_update=True)
    previous = invoice.payment_status
    if previous == new_status:
        return invoice, previous
    invoice.payment_status = new_status
    return await invoice_repo.update(invoice), previous


async def get_invoice(invoice_repo: InvoiceRepository, *, invoice_id: int) -> Invoice:
    return await require_invoice(invoice_repo, invoice_id)


async def get_invoice_for_reservation(invoice_repo: InvoiceRepository, *, reservation_id: int) -> Invoice:
    invoice = await invoice_repo.get_by_reservation(reservation_id)
    if invoice is None:
        raise NoSuchInvoice("no invoice for this reservation", reservation_id=reservation_id)
    return invoice


async def list_invoices(invoice_repo: InvoiceRepository) -> list[Invoice]:
    return await invoice_repo.list_all()


async def billing_summary(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    invoice_repo: InvoiceRepository,
    *,
    festival_id: int,
    default_outlet_price: Decimal = Decimal("0"),
) -> list[BillingSummaryRow]:
    """
    Per-reservation billing overview of a festival, ordered by reservant.

    Amounts are recomputed from the current commitments with the invoice formula, so a
    reservation changed after invoicing shows what a refresh would produce.
    """
    festival = await require_festival(festival_repo, festival_id)
    outlet_price = _outlet_price(festival, default_outlet_price)
    rows = []
    for reservation in sorted(
        await reservation_repo.list_for_festival(festival.id), key=lambda r: (r.reservant_id, r.id)
    ):
        rows.append(
            BillingSummaryRow(
                reservation=reservation,
                amounts=await _amounts(reservation_repo, reservation, outlet_price=outlet_price),
                invoice=await invoice_repo.get_by_reservation(reservation.id),
            )
        )
    return rows
