from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from festiplan.domain.services import InvoiceAmounts
from festiplan.models import (
    ContactState,
    Festival,
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

NOW = datetime(2026, 3, 1, 9, 0, 0)


class Store:
    """In-memory rows shared by the fake repositories of one test."""

    def __init__(self) -> None:
        self.festivals: Dict[int, Festival] = {}
        self.current_festival_id: Optional[int] = None
        self.tariff_zones: Dict[int, TariffZone] = {}
        self.plan_zones: Dict[int, PlanZone] = {}
        self.reservations: Dict[int, Reservation] = {}
        self.commitments: Dict[int, ReservationZone] = {}
        self.contacts: Dict[int, ReservationContact] = {}
        self.games: Dict[int, GameInstance] = {}
        self.invoices: Dict[int, Invoice] = {}
        self.locks: List[Tuple[str, int]] = []
        # plain (non locking) entity reads
        self.reads: List[Tuple[str, int]] = []
        # called after each lock is granted, lets a test commit a concurrent change at that point
        self.on_lock: Optional[Callable[[str, int], None]] = None
        self._next_id = 0

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def lock(self, kind: str, row_id: int) -> None:
        self.locks.append((kind, row_id))
        if self.on_lock is not None:
            self.on_lock(kind, row_id)

    def add_festival(
        self,
        *,
        total_tables: int = 100,
        name: str = "Festival",
        outlet_unit_price: Optional[Decimal] = None,
    ) -> Festival:
        festival = Festival(
            id=self.next_id(),
            name=name,
            total_tables=total_tables,
            outlet_unit_price=outlet_unit_price,
            created_at=NOW,
            updated_at=NOW,
        )
        self.festivals[festival.id] = festival
        return festival


class FakeFestivalRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, festival_id: int) -> Optional[Festival]:
        return self.store.festivals.get(festival_id)

    async def get_for_update(self, festival_id: int) -> Optional[Festival]:
        self.store.lock("festival", festival_id)
        return self.store.festivals.get(festival_id)

    async def get_current(self) -> Optional[Festival]:
        if self.store.current_festival_id is None:
            return None
        return self.store.festivals.get(self.store.current_festival_id)

    async def set_current(self, festival_id: int) -> None:
        self.store.current_festival_id = festival_id


class FakeTariffZoneRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, zone_id: int) -> Optional[TariffZone]:
        self.store.reads.append(("tariff_zone", zone_id))
        return self.store.tariff_zones.get(zone_id)

    async def get_for_update(self, zone_id: int) -> Optional[TariffZone]:
        self.store.lock("tariff_zone", zone_id)
        return self.store.tariff_zones.get(zone_id)

    async def festival_id_of(self, zone_id: int) -> Optional[int]:
        zone = self.store.tariff_zones.get(zone_id)
        return zone.festival_id if zone is not None else None

    async def list_for_update(self, zone_ids: List[int]) -> List[TariffZone]:
        found = []
        for zone_id in sorted(zone_ids):
            self.store.lock("tariff_zone", zone_id)
            if zone_id in self.store.tariff_zones:
                found.append(self.store.tariff_zones[zone_id])
        return found

    async def find_by_name(self, festival_id: int, name: str) -> Optional[TariffZone]:
        for zone in self.store.tariff_zones.values():
            if zone.festival_id == festival_id and zone.name == name:
                return zone
        return None

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: Optional[int] = None) -> int:
        return sum(
            z.table_quota
            for z in self.store.tariff_zones.values()
            if z.festival_id == festival_id and z.id != exclude_zone_id
        )

    async def sum_committed(self, zone_id: int) -> int:
        return sum(c.table_count for c in self.store.commitments.values() if c.tariff_zone_id == zone_id)

    async def count_commitments(self, zone_id: int) -> int:
        return sum(1 for c in self.store.commitments.values() if c.tariff_zone_id == zone_id)

    async def list_with_committed(self, festival_id: int) -> List[Tuple[TariffZone, int]]:
        return [
            (zone, await self.sum_committed(zone.id))
            for zone in self.store.tariff_zones.values()
            if zone.festival_id == festival_id
        ]

    async def create(
        self,
        *,
        festival_id: int,
        name: str,
        table_quota: int,
        price_per_table: Decimal,
        price_per_area: Decimal,
    ) -> TariffZone:
        zone = TariffZone(
            id=self.store.next_id(),
            festival_id=festival_id,
            name=name,
            table_quota=table_quota,
            price_per_table=price_per_table,
            price_per_area=price_per_area,
            created_at=NOW,
            updated_at=NOW,
        )
        self.store.tariff_zones[zone.id] = zone
        return zone

    async def update(self, zone: TariffZone) -> TariffZone:
        return zone

    async def delete(self, zone: TariffZone) -> None:
        del self.store.tariff_zones[zone.id]


class FakePlanZoneRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, zone_id: int) -> Optional[PlanZone]:
        self.store.reads.append(("plan_zone", zone_id))
        return self.store.plan_zones.get(zone_id)

    async def get_for_update(self, zone_id: int) -> Optional[PlanZone]:
        self.store.lock("plan_zone", zone_id)
        return self.store.plan_zones.get(zone_id)

    async def festival_id_of(self, zone_id: int) -> Optional[int]:
        zone = self.store.plan_zones.get(zone_id)
        return zone.festival_id if zone is not None else None

    async def find_by_name(self, festival_id: int, name: str) -> Optional[PlanZone]:
        for zone in self.store.plan_zones.values():
            if zone.festival_id == festival_id and zone.name == name:
                return zone
        return None

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: Optional[int] = None) -> int:
        return sum(
            z.table_quota
            for z in self.store.plan_zones.values()
            if z.festival_id == festival_id and z.id != exclude_zone_id
        )

    async def sum_occupied(self, zone_id: int, *, exclude_game_id: Optional[int] = None) -> int:
        return sum(
            g.placed_tables
            for g in self.store.games.values()
            if g.plan_zone_id == zone_id and g.id != exclude_game_id
        )

    async def count_placed_games(self, zone_id: int) -> int:
        return sum(1 for g in self.store.games.values() if g.plan_zone_id == zone_id)

    async def list_with_occupancy(self, festival_id: int) -> List[Tuple[PlanZone, int, int]]:
        return [
            (zone, await self.sum_occupied(zone.id), await self.count_placed_games(zone.id))
            for zone in self.store.plan_zones.values()
            if zone.festival_id == festival_id
        ]

    async def create(self, *, festival_id: int, name: str, table_quota: int) -> PlanZone:
        zone = PlanZone(
            id=self.store.next_id(),
            festival_id=festival_id,
            name=name,
            table_quota=table_quota,
            created_at=NOW,
            updated_at=NOW,
        )
        self.store.plan_zones[zone.id] = zone
        return zone

    async def update(self, zone: PlanZone) -> PlanZone:
        return zone

    async def delete(self, zone: PlanZone) -> None:
        del self.store.plan_zones[zone.id]


class FakeReservationRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.store.reservations.get(reservation_id)

    async def get_for_update(self, reservation_id: int) -> Optional[Reservation]:
        self.store.lock("reservation", reservation_id)
        return self.store.reservations.get(reservation_id)

    async def find_for_reservant(self, festival_id: int, reservant_id: int) -> Optional[Reservation]:
        for reservation in self.store.reservations.values():
            if reservation.festival_id == festival_id and reservation.reservant_id == reservant_id:
                return reservation
        return None

    async def list_for_festival(self, festival_id: int) -> List[Reservation]:
        return sorted(
            (r for r in self.store.reservations.values() if r.festival_id == festival_id),
            key=lambda r: (r.created_at, r.id),
            reverse=True,
        )

    async def create(
        self,
        *,
        festival_id: int,
        reservant_id: int,
        contact_state: ContactState,
        presence_state: PresenceState,
        outlet_count: int,
        notes: Optional[str],
        will_animate: bool,
    ) -> Reservation:
        reservation = Reservation(
            id=self.store.next_id(),
            festival_id=festival_id,
            reservant_id=reservant_id,
            contact_state=contact_state,
            presence_state=presence_state,
            outlet_count=outlet_count,
            table_discount=Decimal("0"),
            amount_discount=Decimal("0"),
            notes=notes,
            will_animate=will_animate,
            created_at=NOW,
            updated_at=NOW,
        )
        self.store.reservations[reservation.id] = reservation
        return reservation

    async def update(self, reservation: Reservation) -> Reservation:
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        del self.store.reservations[reservation.id]
        for key in [k for k, c in self.store.commitments.items() if c.reservation_id == reservation.id]:
            del self.store.commitments[key]
        for key in [k for k, g in self.store.games.items() if g.reservation_id == reservation.id]:
            del self.store.games[key]
        for key in [k for k, i in self.store.invoices.items() if i.reservation_id == reservation.id]:
            del self.store.invoices[key]
        for key in [k for k, c in self.store.contacts.items() if c.reservation_id == reservation.id]:
            del self.store.contacts[key]

    async def sum_committed(self, reservation_id: int) -> int:
        return sum(c.table_count for c in self.store.commitments.values() if c.reservation_id == reservation_id)

    async def sum_placed(self, reservation_id: int, *, exclude_game_id: Optional[int] = None) -> int:
        return sum(
            g.placed_tables
            for g in self.store.games.values()
            if g.reservation_id == reservation_id and g.id != exclude_game_id
        )

    async def list_commitments(self, reservation_id: int) -> List[Tuple[ReservationZone, str]]:
        return [
            (c, self.store.tariff_zones[c.tariff_zone_id].name)
            for c in self.store.commitments.values()
            if c.reservation_id == reservation_id
        ]

    async def add_commitment(
        self,
        *,
        reservation_id: int,
        tariff_zone_id: int,
        table_count: int,
        unit_price: Decimal,
    ) -> ReservationZone:
        commitment = ReservationZone(
            id=self.store.next_id(),
            reservation_id=reservation_id,
            tariff_zone_id=tariff_zone_id,
            table_count=table_count,
            unit_price=unit_price,
            created_at=NOW,
        )
        self.store.commitments[commitment.id] = commitment
        return commitment

    async def list_contacts(self, reservation_id: int) -> List[ReservationContact]:
        return sorted(
            (c for c in self.store.contacts.values() if c.reservation_id == reservation_id),
            key=lambda c: (c.contacted_at, c.id),
            reverse=True,
        )

    async def add_contact(
        self,
        *,
        reservation_id: int,
        contacted_at: datetime,
        contact_type: Optional[str],
        notes: Optional[str],
    ) -> ReservationContact:
        contact = ReservationContact(
            id=self.store.next_id(),
            reservation_id=reservation_id,
            contacted_at=contacted_at,
            contact_type=contact_type,
            notes=notes,
            created_at=NOW,
        )
        self.store.contacts[contact.id] = contact
        return contact


class FakeGameRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, game_instance_id: int) -> Optional[GameInstance]:
        self.store.reads.append(("game", game_instance_id))
        return self.store.games.get(game_instance_id)

    async def get_for_update(self, game_instance_id: int) -> Optional[GameInstance]:
        self.store.lock("game", game_instance_id)
        return self.store.games.get(game_instance_id)

    async def reservation_id_of(self, game_instance_id: int) -> Optional[int]:
        game = self.store.games.get(game_instance_id)
        return game.reservation_id if game is not None else None

    async def create(
        self,
        *,
        reservation_id: int,
        game_id: int,
        copies: int,
        estimated_tables: int,
    ) -> GameInstance:
        game = GameInstance(
            id=self.store.next_id(),
            reservation_id=reservation_id,
            game_id=game_id,
            copies=copies,
            estimated_tables=estimated_tables,
            plan_zone_id=None,
            standard_tables=0,
            large_tables=0,
            municipal_tables=0,
            received=False,
            created_at=NOW,
            updated_at=NOW,
        )
        self.store.games[game.id] = game
        return game

    async def update(self, game: GameInstance) -> GameInstance:
        return game

    async def delete(self, game: GameInstance) -> None:
        del self.store.games[game.id]

    async def list_for_reservation(self, reservation_id: int) -> List[GameInstance]:
        return [g for g in self.store.games.values() if g.reservation_id == reservation_id]

    async def list_unplaced(self, festival_id: int) -> List[GameInstance]:
        return [
            g
            for g in self.store.games.values()
            if g.plan_zone_id is None and self.store.reservations[g.reservation_id].festival_id == festival_id
        ]

    async def list_in_zone(self, plan_zone_id: int) -> List[GameInstance]:
        return [g for g in self.store.games.values() if g.plan_zone_id == plan_zone_id]


class FakeInvoiceRepo:
    def __init__(self, store: Store) -> None:
        self.store = store

    async def get(self, invoice_id: int) -> Optional[Invoice]:
        return self.store.invoices.get(invoice_id)

    async def get_for_update(self, invoice_id: int) -> Optional[Invoice]:
        self.store.lock("invoice", invoice_id)
        return self.store.invoices.get(invoice_id)

    async def get_by_reservation(self, reservation_id: int, *, for_update: bool = False) -> Optional[Invoice]:
        for invoice in self.store.invoices.values():
            if invoice.reservation_id == reservation_id:
                if for_update:
                    self.store.lock("invoice", invoice.id)
                return invoice
        return None

    async def list_all(self) -> List[Invoice]:
        return list(self.store.invoices.values())

    @staticmethod
    def _lines(amounts: InvoiceAmounts) -> List[InvoiceLine]:
        return [
            InvoiceLine(
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                amount=line.amount,
                created_at=NOW,
            )
            for line in amounts.lines
        ]

    async def create(
        self,
        *,
        reservation_id: int,
        number: str,
        issued_on: date,
        amounts: InvoiceAmounts,
        status: PaymentStatus,
    ) -> Invoice:
        invoice = Invoice(
            id=self.store.next_id(),
            reservation_id=reservation_id,
            number=number,
            issued_on=issued_on,
            table_amount=amounts.table_amount,
            outlet_amount=amounts.outlet_amount,
            gross_amount=amounts.gross_amount,
            discount_amount=amounts.discount_amount,
            total_amount=amounts.total_amount,
            payment_status=status,
            created_at=NOW,
            updated_at=NOW,
            lines=self._lines(amounts),
        )
        self.store.invoices[invoice.id] = invoice
        return invoice

    async def replace_amounts(self, invoice: Invoice, amounts: InvoiceAmounts) -> Invoice:
        invoice.table_amount = amounts.table_amount
        invoice.outlet_amount = amounts.outlet_amount
        invoice.gross_amount = amounts.gross_amount
        invoice.discount_amount = amounts.discount_amount
        invoice.total_amount = amounts.total_amount
        invoice.lines = self._lines(amounts)
        return invoice

    async def update(self, invoice: Invoice) -> Invoice:
        return invoice

    async def delete(self, invoice: Invoice) -> None:
        del self.store.invoices[invoice.id]


class Repos:
    def __init__(self, store: Store) -> None:
        self.store = store
        self.festivals = FakeFestivalRepo(store)
        self.tariff_zones = FakeTariffZoneRepo(store)
        self.plan_zones = FakePlanZoneRepo(store)
        self.reservations = FakeReservationRepo(store)
        self.games = FakeGameRepo(store)
        self.invoices = FakeInvoiceRepo(store)


@pytest.fixture
def repos() -> Repos:
    return Repos(Store())
