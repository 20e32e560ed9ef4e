from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .domain.services import InvoiceAmounts, LineItem
from .models import (
    ContactState,
    Festival,
    GameInstance,
    Invoice,
    PaymentStatus,
    PlanZone,
    PresenceState,
    Reservation,
    ReservationContact,
    ReservationZone,
    TariffZone,
)
from .usecases.invoices import BillingSummaryRow


class PatchModel(BaseModel):
    """Partial update body: only declared fields are accepted, unknown keys are a 422."""

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class FestivalRead(BaseModel):
    festival_id: int
    name: str
    total_tables: int
    outlet_unit_price: Optional[Decimal]

    @classmethod
    def from_db(cls, *, festival: Festival) -> "FestivalRead":
        return cls(
            festival_id=festival.id,
            name=festival.name,
            total_tables=festival.total_tables,
            outlet_unit_price=festival.outlet_unit_price,
        )


class TariffZoneCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    table_quota: int = Field(ge=0)
    price_per_table: Decimal = Field(ge=0)
    price_per_area: Optional[Decimal] = Field(default=None, ge=0)


class TariffZoneUpdate(PatchModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    table_quota: Optional[int] = Field(default=None, ge=0)
    price_per_table: Optional[Decimal] = Field(default=None, ge=0)
    price_per_area: Optional[Decimal] = Field(default=None, ge=0)


class ZoneResize(BaseModel):
    table_quota: int = Field(ge=0)


class TariffZoneRead(BaseModel):
    zone_id: int
    festival_id: int
    name: str
    table_quota: int
    price_per_table: Decimal
    price_per_area: Decimal
    reserved_tables: Optional[int] = None
    available_tables: Optional[int] = None

    @classmethod
    def from_db(cls, *, zone: TariffZone, reserved: Optional[int] = None) -> "TariffZoneRead":
        return cls(
            zone_id=zone.id,
            festival_id=zone.festival_id,
            name=zone.name,
            table_quota=zone.table_quota,
            price_per_table=zone.price_per_table,
            price_per_area=zone.price_per_area,
            reserved_tables=reserved,
            available_tables=None if reserved is None else zone.table_quota - reserved,
        )


class PlanZoneCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    table_quota: int = Field(ge=0)


class PlanZoneUpdate(PatchModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    table_quota: Optional[int] = Field(default=None, ge=0)


class PlanZoneRead(BaseModel):
    zone_id: int
    festival_id: int
    name: str
    table_quota: int
    occupied_tables: Optional[int] = None
    available_tables: Optional[int] = None
    placed_games: Optional[int] = None

    @classmethod
    def from_db(
        cls,
        *,
        zone: PlanZone,
        occupied: Optional[int] = None,
        placed_games: Optional[int] = None,
    ) -> "PlanZoneRead":
        return cls(
            zone_id=zone.id,
            festival_id=zone.festival_id,
            name=zone.name,
            table_quota=zone.table_quota,
            occupied_tables=occupied,
            available_tables=None if occupied is None else zone.table_quota - occupied,
            placed_games=placed_games,
        )


class ZoneCommitmentItem(BaseModel):
    zone_id: int
    table_count: int = Field(ge=1)


class CommitZonesRequest(BaseModel):
    zones: List[ZoneCommitmentItem] = Field(min_length=1)


class CommitmentRead(BaseModel):
    commitment_id: int
    reservation_id: int
    zone_id: int
    zone_name: Optional[str] = None
    table_count: int
    unit_price: Decimal

    @classmethod
    def from_db(cls, *, commitment: ReservationZone, zone_name: Optional[str] = None) -> "CommitmentRead":
        return cls(
            commitment_id=commitment.id,
            reservation_id=commitment.reservation_id,
            zone_id=commitment.tariff_zone_id,
            zone_name=zone_name,
            table_count=commitment.table_count,
            unit_price=commitment.unit_price,
        )


class ReservationCreate(BaseModel):
    reservant_id: int
    contact_state: ContactState = ContactState.NOT_CONTACTED
    presence_state: PresenceState = PresenceState.UNDEFINED
    outlet_count: int = Field(default=0, ge=0)
    notes: Optional[str] = None
    will_animate: bool = True
    zones: List[ZoneCommitmentItem] = Field(default_factory=list)


class ReservationUpdate(PatchModel):
    contact_state: Optional[ContactState] = None
    presence_state: Optional[PresenceState] = None
    outlet_count: Optional[int] = Field(default=None, ge=0)
    table_discount: Optional[Decimal] = Field(default=None, ge=0)
    amount_discount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    will_animate: Optional[bool] = None


class ContactStateUpdate(BaseModel):
    contact_state: ContactState


class PresenceStateUpdate(BaseModel):
    presence_state: PresenceState


class ContactCreate(BaseModel):
    contacted_at: Optional[datetime] = None
    contact_type: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = None


class ContactRead(BaseModel):
    contact_id: int
    reservation_id: int
    contacted_at: datetime
    contact_type: Optional[str]
    notes: Optional[str]

    @classmethod
    def from_db(cls, *, contact: ReservationContact) -> "ContactRead":
        return cls(
            contact_id=contact.id,
            reservation_id=contact.reservation_id,
            contacted_at=contact.contacted_at,
            contact_type=contact.contact_type,
            notes=contact.notes,
        )


class ReservationRead(BaseModel):
    reservation_id: int
    festival_id: int
    reservant_id: int
    contact_state: ContactState
    presence_state: PresenceState
    outlet_count: int
    table_discount: Decimal
    amount_discount: Decimal
    notes: Optional[str]
    will_animate: bool
    commitments: Optional[List[CommitmentRead]] = None
    contacts: Optional[List[ContactRead]] = None

    @classmethod
    def from_db(
        cls,
        *,
        reservation: Reservation,
        commitments: Optional[List[CommitmentRead]] = None,
        contacts: Optional[List[ContactRead]] = None,
    ) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            festival_id=reservation.festival_id,
            reservant_id=reservation.reservant_id,
            contact_state=reservation.contact_state,
            presence_state=reservation.presence_state,
            outlet_count=reservation.outlet_count,
            table_discount=reservation.table_discount,
            amount_discount=reservation.amount_discount,
            notes=reservation.notes,
            will_animate=reservation.will_animate,
            commitments=commitments,
            contacts=contacts,
        )


class BudgetRead(BaseModel):
    reservation_id: int
    budget: int
    consumed: int
    remaining: int
    commitments: List[CommitmentRead]


class GameAdd(BaseModel):
    game_id: int
    copies: int = Field(default=1, ge=1)
    estimated_tables: int = Field(default=1, ge=0)


class GameReceived(BaseModel):
    received: bool


class PlacementRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plan_zone_id: int
    standard_tables: int = Field(default=0, ge=0)
    large_tables: int = Field(default=0, ge=0)
    municipal_tables: int = Field(default=0, ge=0)


class GameInstanceRead(BaseModel):
    game_instance_id: int
    reservation_id: int
    game_id: int
    copies: int
    estimated_tables: int
    plan_zone_id: Optional[int]
    standard_tables: int
    large_tables: int
    municipal_tables: int
    placed_tables: int
    is_placed: bool
    received: bool

    @classmethod
    def from_db(cls, *, game: GameInstance) -> "GameInstanceRead":
        return cls(
            game_instance_id=game.id,
            reservation_id=game.reservation_id,
            game_id=game.game_id,
            copies=game.copies,
            estimated_tables=game.estimated_tables,
            plan_zone_id=game.plan_zone_id,
            standard_tables=game.standard_tables,
            large_tables=game.large_tables,
            municipal_tables=game.municipal_tables,
            placed_tables=game.placed_tables,
            is_placed=game.is_placed,
            received=game.received,
        )


class InvoiceLineIn(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal

    def to_line_item(self) -> LineItem:
        return LineItem(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            amount=self.amount,
        )


class InvoiceUpdate(BaseModel):
    table_amount: Decimal = Field(ge=0)
    outlet_amount: Decimal = Field(ge=0)
    discount_amount: Decimal = Field(ge=0)
    lines: Optional[List[InvoiceLineIn]] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: str


class InvoiceLineRead(BaseModel):
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


class InvoicePreview(BaseModel):
    table_amount: Decimal
    outlet_amount: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    lines: List[InvoiceLineRead]

    @classmethod
    def from_amounts(cls, amounts: InvoiceAmounts) -> "InvoicePreview":
        return cls(
            table_amount=amounts.table_amount,
            outlet_amount=amounts.outlet_amount,
            gross_amount=amounts.gross_amount,
            discount_amount=amounts.discount_amount,
            total_amount=amounts.total_amount,
            lines=[
                InvoiceLineRead(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    amount=line.amount,
                )
                for line in amounts.lines
            ],
        )


class InvoiceRead(BaseModel):
    invoice_id: int
    reservation_id: int
    number: str
    issued_on: date
    table_amount: Decimal
    outlet_amount: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    payment_status: PaymentStatus
    lines: List[InvoiceLineRead]

    @classmethod
    def from_db(cls, *, invoice: Invoice) -> "InvoiceRead":
        return cls(
            invoice_id=invoice.id,
            reservation_id=invoice.reservation_id,
            number=invoice.number,
            issued_on=invoice.issued_on,
            table_amount=invoice.table_amount,
            outlet_amount=invoice.outlet_amount,
            gross_amount=invoice.gross_amount,
            discount_amount=invoice.discount_amount,
            total_amount=invoice.total_amount,
            payment_status=invoice.payment_status,
            lines=[
                InvoiceLineRead(
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    amount=line.amount,
                )
                for line in invoice.lines
            ],
        )


class BillingSummaryRead(BaseModel):
    reservation_id: int
    festival_id: int
    reservant_id: int
    contact_state: ContactState
    presence_state: PresenceState
    table_amount: Decimal
    outlet_amount: Decimal
    gross_amount: Decimal
    table_discount: Decimal
    amount_discount: Decimal
    table_discount_amount: Decimal
    net_amount: Decimal
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    issued_on: Optional[date] = None

    @classmethod
    def from_row(cls, row: BillingSummaryRow) -> "BillingSummaryRead":
        reservation, amounts, invoice = row.reservation, row.amounts, row.invoice
        return cls(
            reservation_id=reservation.id,
            festival_id=reservation.festival_id,
            reservant_id=reservation.reservant_id,
            contact_state=reservation.contact_state,
            presence_state=reservation.presence_state,
            table_amount=amounts.table_amount,
            outlet_amount=amounts.outlet_amount,
            gross_amount=amounts.gross_amount,
            table_discount=reservation.table_discount,
            amount_discount=reservation.amount_discount,
            table_discount_amount=row.table_discount_amount,
            net_amount=amounts.total_amount,
            invoice_id=invoice.id if invoice is not None else None,
            invoice_number=invoice.number if invoice is not None else None,
            payment_status=invoice.payment_status if invoice is not None else None,
            issued_on=invoice.issued_on if invoice is not None else None,
        )
