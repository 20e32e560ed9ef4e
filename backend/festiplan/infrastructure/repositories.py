from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple, TypeVar

from sqlalchemy import Select, delete, func, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..domain.repositories import (
    FestivalRepository,
    GameInstanceRepository,
    InvoiceRepository,
    PlanZoneRepository,
    ReservationRepository,
    TariffZoneRepository,
)
from ..domain.services import InvoiceAmounts
from ..models import (
    ContactState,
    Festival,
    FestivalRegistry,
    GameInstance,
    Invoice,
    InvoiceLine,
    PaymentStatus,
    PlanZone,
    PresenceState,
    Reservation,
    ReservationContact,
    ReservationZone,
    TariffZone,
)
from ..utils.time import utc_now_naive

_REGISTRY_ROW_ID = 1

_placed_tables = GameInstance.standard_tables + GameInstance.large_tables + GameInstance.municipal_tables

_SelectT = TypeVar("_SelectT", bound="Select[Any]")


def _for_update(stmt: _SelectT) -> _SelectT:
    # rows already in the identity map are overwritten with the values read under the lock
    return stmt.with_for_update().execution_options(populate_existing=True)


class SqlAlchemyFestivalRepository(FestivalRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, festival_id: int) -> Festival | None:
        return await self.session.get(Festival, festival_id)

    async def get_for_update(self, festival_id: int) -> Festival | None:
        result = await self.session.scalar(_for_update(select(Festival).where(Festival.id == festival_id)))
        return result if isinstance(result, Festival) else None

    async def get_current(self) -> Festival | None:
        stmt = (
            select(Festival)
            .join(FestivalRegistry, FestivalRegistry.current_festival_id == Festival.id)
            .where(FestivalRegistry.id == _REGISTRY_ROW_ID)
        )
        return await self.session.scalar(stmt)

    async def set_current(self, festival_id: int) -> None:
        # single statement upsert, the previous holder is replaced in place
        stmt = mysql_insert(FestivalRegistry).values(
            id=_REGISTRY_ROW_ID,
            current_festival_id=festival_id,
            updated_at=utc_now_naive(),
        )
        stmt = stmt.on_duplicate_key_update(
            current_festival_id=stmt.inserted.current_festival_id,
            updated_at=stmt.inserted.updated_at,
        )
        await self.session.execute(stmt)


class SqlAlchemyTariffZoneRepository(TariffZoneRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, zone_id: int) -> TariffZone | None:
        return await self.session.get(TariffZone, zone_id)

    async def get_for_update(self, zone_id: int) -> TariffZone | None:
        result = await self.session.scalar(_for_update(select(TariffZone).where(TariffZone.id == zone_id)))
        return result if isinstance(result, TariffZone) else None

    async def festival_id_of(self, zone_id: int) -> int | None:
        return await self.session.scalar(select(TariffZone.festival_id).where(TariffZone.id == zone_id))

    async def list_for_update(self, zone_ids: list[int]) -> List[TariffZone]:
        if not zone_ids:
            return []
        stmt = _for_update(select(TariffZone).where(TariffZone.id.in_(zone_ids)).order_by(TariffZone.id))
        return list((await self.session.scalars(stmt)).all())

    async def find_by_name(self, festival_id: int, name: str) -> TariffZone | None:
        stmt = select(TariffZone).where(TariffZone.festival_id == festival_id, TariffZone.name == name)
        return await self.session.scalar(stmt)

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: int | None = None) -> int:
        stmt = select(func.coalesce(func.sum(TariffZone.table_quota), 0)).where(TariffZone.festival_id == festival_id)
        if exclude_zone_id is not None:
            stmt = stmt.where(TariffZone.id != exclude_zone_id)
        return int(await self.session.scalar(stmt) or 0)

    async def sum_committed(self, zone_id: int) -> int:
        stmt = select(func.coalesce(func.sum(ReservationZone.table_count), 0)).where(
            ReservationZone.tariff_zone_id == zone_id
        )
        return int(await self.session.scalar(stmt) or 0)

    async def count_commitments(self, zone_id: int) -> int:
        stmt = select(func.count(ReservationZone.id)).where(ReservationZone.tariff_zone_id == zone_id)
        return int(await self.session.scalar(stmt) or 0)

    async def list_with_committed(self, festival_id: int) -> List[Tuple[TariffZone, int]]:
        stmt: Select[Tuple[TariffZone, Any]] = (
            select(
                TariffZone,
                func.coalesce(func.sum(ReservationZone.table_count), 0).label("committed"),
            )
            .outerjoin(ReservationZone, ReservationZone.tariff_zone_id == TariffZone.id)
            .where(TariffZone.festival_id == festival_id)
            .group_by(TariffZone.id)
            .order_by(TariffZone.name)
        )
        rows = await self.session.execute(stmt)
        return [(zone, int(committed)) for zone, committed in rows.all()]

    async def create(
        self,
        *,
        festival_id: int,
        name: str,
        table_quota: int,
        price_per_table: Decimal,
        price_per_area: Decimal,
    ) -> TariffZone:
        now = utc_now_naive()
        zone = TariffZone(
            festival_id=festival_id,
            name=name,
            table_quota=table_quota,
            price_per_table=price_per_table,
            price_per_area=price_per_area,
            created_at=now,
            updated_at=now,
        )
        self.session.add(zone)
        await self.session.flush()
        return zone

    async def update(self, zone: TariffZone) -> TariffZone:
        zone.updated_at = utc_now_naive()
        self.session.add(zone)
        await self.session.flush()
        return zone

    async def delete(self, zone: TariffZone) -> None:
        await self.session.delete(zone)
        await self.session.flush()


class SqlAlchemyPlanZoneRepository(PlanZoneRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, zone_id: int) -> PlanZone | None:
        return await self.session.get(PlanZone, zone_id)

    async def get_for_update(self, zone_id: int) -> PlanZone | None:
        result = await self.session.scalar(_for_update(select(PlanZone).where(PlanZone.id == zone_id)))
        return result if isinstance(result, PlanZone) else None

    async def festival_id_of(self, zone_id: int) -> int | None:
        return await self.session.scalar(select(PlanZone.festival_id).where(PlanZone.id == zone_id))

    async def find_by_name(self, festival_id: int, name: str) -> PlanZone | None:
        stmt = select(PlanZone).where(PlanZone.festival_id == festival_id, PlanZone.name == name)
        return await self.session.scalar(stmt)

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: int | None = None) -> int:
        stmt = select(func.coalesce(func.sum(PlanZone.table_quota), 0)).where(PlanZone.festival_id == festival_id)
        if exclude_zone_id is not None:
            stmt = stmt.where(PlanZone.id != exclude_zone_id)
        return int(await self.session.scalar(stmt) or 0)

    async def sum_occupied(self, zone_id: int, *, exclude_game_id: int | None = None) -> int:
        stmt = select(func.coalesce(func.sum(_placed_tables), 0)).where(GameInstance.plan_zone_id == zone_id)
        if exclude_game_id is not None:
            stmt = stmt.where(GameInstance.id != exclude_game_id)
        return int(await self.session.scalar(stmt) or 0)

    async def count_placed_games(self, zone_id: int) -> int:
        stmt = select(func.count(GameInstance.id)).where(GameInstance.plan_zone_id == zone_id)
        return int(await self.session.scalar(stmt) or 0)

    async def list_with_occupancy(self, festival_id: int) -> List[Tuple[PlanZone, int, int]]:
        stmt: Select[Tuple[PlanZone, Any, Any]] = (
            select(
                PlanZone,
                func.coalesce(func.sum(_placed_tables), 0).label("occupied"),
                func.count(GameInstance.id).label("placed_games"),
            )
            .outerjoin(GameInstance, GameInstance.plan_zone_id == PlanZone.id)
            .where(PlanZone.festival_id == festival_id)
            .group_by(PlanZone.id)
            .order_by(PlanZone.name)
        )
        rows = await self.session.execute(stmt)
        return [(zone, int(occupied), int(placed)) for zone, occupied, placed in rows.all()]

    async def create(self, *, festival_id: int, name: str, table_quota: int) -> PlanZone:
        now = utc_now_naive()
        zone = PlanZone(
            festival_id=festival_id,
            name=name,
            table_quota=table_quota,
            created_at=now,
            updated_at=now,
        )
        self.session.add(zone)
        await self.session.flush()
        return zone

    async def update(self, zone: PlanZone) -> PlanZone:
        zone.updated_at = utc_now_naive()
        self.session.add(zone)
        await self.session.flush()
        return zone

    async def delete(self, zone: PlanZone) -> None:
        await self.session.delete(zone)
        await self.session.flush()


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, reservation_id: int) -> Reservation | None:
        return await self.session.get(Reservation, reservation_id)

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        result = await self.session.scalar(
            _for_update(select(Reservation).where(Reservation.id == reservation_id))
        )
        return result if isinstance(result, Reservation) else None

    async def find_for_reservant(self, festival_id: int, reservant_id: int) -> Reservation | None:
        stmt = select(Reservation).where(
            Reservation.festival_id == festival_id,
            Reservation.reservant_id == reservant_id,
        )
        return await self.session.scalar(stmt)

    async def list_for_festival(self, festival_id: int) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.festival_id == festival_id)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create(
        self,
        *,
        festival_id: int,
        reservant_id: int,
        contact_state: ContactState,
        presence_state: PresenceState,
        outlet_count: int,
        notes: str | None,
        will_animate: bool,
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            festival_id=festival_id,
            reservant_id=reservant_id,
            contact_state=contact_state,
            presence_state=presence_state,
            outlet_count=outlet_count,
            table_discount=Decimal("0"),
            amount_discount=Decimal("0"),
            notes=notes,
            will_animate=will_animate,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def update(self, reservation: Reservation) -> Reservation:
        reservation.updated_at = utc_now_naive()
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        await self.session.execute(delete(Reservation).where(Reservation.id == reservation.id))
        await self.session.flush()

    async def sum_committed(self, reservation_id: int) -> int:
        stmt = select(func.coalesce(func.sum(ReservationZone.table_count), 0)).where(
            ReservationZone.reservation_id == reservation_id
        )
        return int(await self.session.scalar(stmt) or 0)

    async def sum_placed(self, reservation_id: int, *, exclude_game_id: int | None = None) -> int:
        stmt = select(func.coalesce(func.sum(_placed_tables), 0)).where(
            GameInstance.reservation_id == reservation_id,
            GameInstance.plan_zone_id.is_not(None),
        )
        if exclude_game_id is not None:
            stmt = stmt.where(GameInstance.id != exclude_game_id)
        return int(await self.session.scalar(stmt) or 0)

    async def list_commitments(self, reservation_id: int) -> List[Tuple[ReservationZone, str]]:
        stmt: Select[Tuple[ReservationZone, str]] = (
            select(ReservationZone, TariffZone.name)
            .join(TariffZone, ReservationZone.tariff_zone_id == TariffZone.id)
            .where(ReservationZone.reservation_id == reservation_id)
            .order_by(ReservationZone.id)
        )
        rows = await self.session.execute(stmt)
        return [(commitment, name) for commitment, name in rows.all()]

    async def add_commitment(
        self,
        *,
        reservation_id: int,
        tariff_zone_id: int,
        table_count: int,
        unit_price: Decimal,
    ) -> ReservationZone:
        commitment = ReservationZone(
            reservation_id=reservation_id,
            tariff_zone_id=tariff_zone_id,
            table_count=table_count,
            unit_price=unit_price,
            created_at=utc_now_naive(),
        )
        self.session.add(commitment)
        await self.session.flush()
        return commitment

    async def list_contacts(self, reservation_id: int) -> List[ReservationContact]:
        stmt = (
            select(ReservationContact)
            .where(ReservationContact.reservation_id == reservation_id)
            .order_by(ReservationContact.contacted_at.desc(), ReservationContact.id.desc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def add_contact(
        self,
        *,
        reservation_id: int,
        contacted_at: datetime,
        contact_type: str | None,
        notes: str | None,
    ) -> ReservationContact:
        contact = ReservationContact(
            reservation_id=reservation_id,
            contacted_at=contacted_at,
            contact_type=contact_type,
            notes=notes,
            created_at=utc_now_naive(),
        )
        self.session.add(contact)
        await self.session.flush()
        return contact


class SqlAlchemyGameInstanceRepository(GameInstanceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, game_instance_id: int) -> GameInstance | None:
        return await self.session.get(GameInstance, game_instance_id)

    async def get_for_update(self, game_instance_id: int) -> GameInstance | None:
        result = await self.session.scalar(
            _for_update(select(GameInstance).where(GameInstance.id == game_instance_id))
        )
        return result if isinstance(result, GameInstance) else None

    async def reservation_id_of(self, game_instance_id: int) -> int | None:
        return await self.session.scalar(
            select(GameInstance.reservation_id).where(GameInstance.id == game_instance_id)
        )

    async def create(
        self,
        *,
        reservation_id: int,
        game_id: int,
        copies: int,
        estimated_tables: int,
    ) -> GameInstance:
        now = utc_now_naive()
        game = GameInstance(
            reservation_id=reservation_id,
            game_id=game_id,
            copies=copies,
            estimated_tables=estimated_tables,
            plan_zone_id=None,
            standard_tables=0,
            large_tables=0,
            municipal_tables=0,
            received=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(game)
        await self.session.flush()
        return game

    async def update(self, game: GameInstance) -> GameInstance:
        game.updated_at = utc_now_naive()
        self.session.add(game)
        await self.session.flush()
        return game

    async def delete(self, game: GameInstance) -> None:
        await self.session.delete(game)
        await self.session.flush()

    async def list_for_reservation(self, reservation_id: int) -> List[GameInstance]:
        stmt = select(GameInstance).where(GameInstance.reservation_id == reservation_id).order_by(GameInstance.id)
        return list((await self.session.scalars(stmt)).all())

    async def list_unplaced(self, festival_id: int) -> List[GameInstance]:
        stmt = (
            select(GameInstance)
            .join(Reservation, GameInstance.reservation_id == Reservation.id)
            .where(Reservation.festival_id == festival_id, GameInstance.plan_zone_id.is_(None))
            .order_by(GameInstance.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_in_zone(self, plan_zone_id: int) -> List[GameInstance]:
        stmt = select(GameInstance).where(GameInstance.plan_zone_id == plan_zone_id).order_by(GameInstance.id)
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyInvoiceRepository(InvoiceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self) -> Select[Tuple[Invoice]]:
        return select(Invoice).options(selectinload(Invoice.lines))

    async def get(self, invoice_id: int) -> Invoice | None:
        return await self.session.scalar(self._select().where(Invoice.id == invoice_id))

    async def get_for_update(self, invoice_id: int) -> Invoice | None:
        result = await self.session.scalar(_for_update(self._select().where(Invoice.id == invoice_id)))
        return result if isinstance(result, Invoice) else None

    async def get_by_reservation(self, reservation_id: int, *, for_update: bool = False) -> Optional[Invoice]:
        stmt = self._select().where(Invoice.reservation_id == reservation_id)
        if for_update:
            stmt = _for_update(stmt)
        return await self.session.scalar(stmt)

    async def list_all(self) -> List[Invoice]:
        stmt = self._select().order_by(Invoice.created_at.desc())
        return list((await self.session.scalars(stmt)).all())

    async def create(
        self,
        *,
        reservation_id: int,
        number: str,
        issued_on: date,
        amounts: InvoiceAmounts,
        status: PaymentStatus,
    ) -> Invoice:
        now = utc_now_naive()
        invoice = Invoice(
            reservation_id=reservation_id,
            number=number,
            issued_on=issued_on,
            table_amount=amounts.table_amount,
            outlet_amount=amounts.outlet_amount,
            gross_amount=amounts.gross_amount,
            discount_amount=amounts.discount_amount,
            total_amount=amounts.total_amount,
            payment_status=status,
            created_at=now,
            updated_at=now,
        )
        invoice.lines = _build_lines(amounts, now=now)
        self.session.add(invoice)
        await self.session.flush()
        return invoice

    async def replace_amounts(self, invoice: Invoice, amounts: InvoiceAmounts) -> Invoice:
        now = utc_now_naive()
        invoice.table_amount = amounts.table_amount
        invoice.outlet_amount = amounts.outlet_amount
        invoice.gross_amount = amounts.gross_amount
        invoice.discount_amount = amounts.discount_amount
        invoice.total_amount = amounts.total_amount
        invoice.lines = _build_lines(amounts, now=now)
        invoice.updated_at = now
        self.session.add(invoice)
        await self.session.flush()
        return invoice

    async def update(self, invoice: Invoice) -> Invoice:
        invoice.updated_at = utc_now_naive()
        self.session.add(invoice)
        await self.session.flush()
        return invoice

    async def delete(self, invoice: Invoice) -> None:
        await self.session.delete(invoice)
        await self.session.flush()


def _build_lines(amounts: InvoiceAmounts, *, now: datetime) -> list[InvoiceLine]:
    return [
        InvoiceLine(
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            amount=line.amount,
            created_at=now,
        )
        for line in amounts.lines
    ]
