from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from ..models import (
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
from .services import InvoiceAmounts


class FestivalRepository(Protocol):
    async def get(self, festival_id: int) -> Festival | None: ...

    async def get_for_update(self, festival_id: int) -> Festival | None: ...

    async def get_current(self) -> Festival | None: ...

    async def set_current(self, festival_id: int) -> None: ...


class TariffZoneRepository(Protocol):
    async def get(self, zone_id: int) -> TariffZone | None: ...

    async def get_for_update(self, zone_id: int) -> TariffZone | None: ...

    async def festival_id_of(self, zone_id: int) -> int | None: ...

    async def list_for_update(self, zone_ids: list[int]) -> list[TariffZone]: ...

    async def find_by_name(self, festival_id: int, name: str) -> TariffZone | None: ...

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: int | None = None) -> int: ...

    async def sum_committed(self, zone_id: int) -> int: ...

    async def count_commitments(self, zone_id: int) -> int: ...

    async def list_with_committed(self, festival_id: int) -> list[tuple[TariffZone, int]]: ...

    async def create(
        self,
        *,
        festival_id: int,
        name: str,
        table_quota: int,
        price_per_table: Decimal,
        price_per_area: Decimal,
    ) -> TariffZone: ...

    async def update(self, zone: TariffZone) -> TariffZone: ...

    async def delete(self, zone: TariffZone) -> None: ...


class PlanZoneRepository(Protocol):
    async def get(self, zone_id: int) -> PlanZone | None: ...

    async def get_for_update(self, zone_id: int) -> PlanZone | None: ...

    async def festival_id_of(self, zone_id: int) -> int | None: ...

    async def find_by_name(self, festival_id: int, name: str) -> PlanZone | None: ...

    async def sum_quota(self, festival_id: int, *, exclude_zone_id: int | None = None) -> int: ...

    async def sum_occupied(self, zone_id: int, *, exclude_game_id: int | None = None) -> int: ...

    async def count_placed_games(self, zone_id: int) -> int: ...

    async def list_with_occupancy(self, festival_id: int) -> list[tuple[PlanZone, int, int]]: ...

    async def create(self, *, festival_id: int, name: str, table_quota: int) -> PlanZone: ...

    async def update(self, zone: PlanZone) -> PlanZone: ...

    async def delete(self, zone: PlanZone) -> None: ...


class ReservationRepository(Protocol):
    async def get(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def find_for_reservant(self, festival_id: int, reservant_id: int) -> Reservation | None: ...

    async def list_for_festival(self, festival_id: int) -> list[Reservation]: ...

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
    ) -> Reservation: ...

    async def update(self, reservation: Reservation) -> Reservation: ...

    async def delete(self, reservation: Reservation) -> None: ...

    async def sum_committed(self, reservation_id: int) -> int: ...

    async def sum_placed(self, reservation_id: int, *, exclude_game_id: int | None = None) -> int: ...

    async def list_commitments(self, reservation_id: int) -> list[tuple[ReservationZone, str]]: ...

    async def add_commitment(
        self,
        *,
        reservation_id: int,
        tariff_zone_id: int,
        table_count: int,
        unit_price: Decimal,
    ) -> ReservationZone: ...

    async def list_contacts(self, reservation_id: int) -> list[ReservationContact]: ...

    async def add_contact(
        self,
        *,
        reservation_id: int,
        contacted_at: datetime,
        contact_type: str | None,
        notes: str | None,
    ) -> ReservationContact: ...


class GameInstanceRepository(Protocol):
    async def get(self, game_instance_id: int) -> GameInstance | None: ...

    async def get_for_update(self, game_instance_id: int) -> GameInstance | None: ...

    async def reservation_id_of(self, game_instance_id: int) -> int | None: ...

    async def create(
        self,
        *,
        reservation_id: int,
        game_id: int,
        copies: int,
        estimated_tables: int,
    ) -> GameInstance: ...

    async def update(self, game: GameInstance) -> GameInstance: ...

    async def delete(self, game: GameInstance) -> None: ...

    async def list_for_reservation(self, reservation_id: int) -> list[GameInstance]: ...

    async def list_unplaced(self, festival_id: int) -> list[GameInstance]: ...

    async def list_in_zone(self, plan_zone_id: int) -> list[GameInstance]: ...


class InvoiceRepository(Protocol):
    async def get(self, invoice_id: int) -> Invoice | None: ...

    async def get_for_update(self, invoice_id: int) -> Invoice | None: ...

    async def get_by_reservation(self, reservation_id: int, *, for_update: bool = False) -> Invoice | None: ...

    async def list_all(self) -> list[Invoice]: ...

    async def create(
        self,
        *,
        reservation_id: int,
        number: str,
        issued_on: date,
        amounts: InvoiceAmounts,
        status: PaymentStatus,
    ) -> Invoice: ...

    async def replace_amounts(self, invoice: Invoice, amounts: InvoiceAmounts) -> Invoice: ...

    async def update(self, invoice: Invoice) -> Invoice: ...

    async def delete(self, invoice: Invoice) -> None: ...
