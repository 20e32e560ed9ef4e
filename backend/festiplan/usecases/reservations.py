import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence

from ..domain.errors import (
    CrossFestivalMismatch,
    DomainError,
    InvoicePaid,
    NoSuchGameInstance,
    NoSuchReservation,
    NoSuchZone,
    ReservationAlreadyExists,
)
from ..domain.repositories import (
    FestivalRepository,
    GameInstanceRepository,
    InvoiceRepository,
    ReservationRepository,
    TariffZoneRepository,
)
from ..domain.services import CommitmentSnapshot, changed_fields, validate_commitment
from ..models import (
    ContactState,
    GameInstance,
    PaymentStatus,
    PresenceState,
    Reservation,
    ReservationContact,
    ReservationZone,
)
from ..utils.time import to_utc_naive, utc_now_naive
from .festivals import require_festival

logger = logging.getLogger(__name__)

RESERVATION_FIELDS = frozenset(
    {
        "contact_state",
        "presence_state",
        "outlet_count",
        "table_discount",
        "amount_discount",
        "notes",
        "will_animate",
    }
)


@dataclass(frozen=True)
class ZoneRequest:
    zone_id: int
    table_count: int


@dataclass(frozen=True)
class ReservationBudget:
    reservation_id: int
    budget: int
    consumed: int

    @property
    def remaining(self) -> int:
        return self.budget - self.consumed


async def require_reservation(
    reservation_repo: ReservationRepository,
    reservation_id: int,
    *,
    for_update: bool = False,
) -> Reservation:
    if for_update:
        reservation = await reservation_repo.get_for_update(reservation_id)
    else:
        reservation = await reservation_repo.get(reservation_id)
    if reservation is None:
        raise NoSuchReservation("reservation not found", reservation_id=reservation_id)
    return reservation


async def create_reservation(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    zone_repo: TariffZoneRepository,
    *,
    festival_id: int,
    reservant_id: int,
    contact_state: ContactState = ContactState.NOT_CONTACTED,
    presence_state: PresenceState = PresenceState.UNDEFINED,
    outlet_count: int = 0,
    notes: str | None = None,
    will_animate: bool = True,
    zones: Sequence[ZoneRequest] = (),
) -> tuple[Reservation, list[ReservationZone]]:
    festival = await require_festival(festival_repo, festival_id)
    if await reservation_repo.find_for_reservant(festival.id, reservant_id) is not None:
        raise ReservationAlreadyExists(
            "a reservation already exists for this reservant at this festival",
            festival_id=festival.id,
            reservant_id=reservant_id,
        )
    if outlet_count < 0:
        raise ValueError("outlet_count must be >= 0")

    reservation = await reservation_repo.create(
        festival_id=festival.id,
        reservant_id=reservant_id,
        contact_state=contact_state,
        presence_state=presence_state,
        outlet_count=outlet_count,
        notes=notes,
        will_animate=will_animate,
    )
    commitments: list[ReservationZone] = []
    if zones:
        commitments = await _commit(reservation_repo, zone_repo, reservation, zones)
    return reservation, commitments


async def commit_zones(
    reservation_repo: ReservationRepository,
    zone_repo: TariffZoneRepository,
    *,
    reservation_id: int,
    zones: Sequence[ZoneRequest],
) -> list[ReservationZone]:
    """
    Commits tables from one or more tariff zones to a reservation.

    Every entry is validated against the zone's remaining tables before anything is
    written; the unit price is copied from the zone at this point.
    """
    reservation = await require_reservation(reservation_repo, reservation_id, for_update=True)
    return await _commit(reservation_repo, zone_repo, reservation, zones)


async def _commit(
    reservation_repo: ReservationRepository,
    zone_repo: TariffZoneRepository,
    reservation: Reservation,
    zones: Sequence[ZoneRequest],
) -> list[ReservationZone]:
    if not zones:
        raise ValueError("at least one zone is required")

    requested: dict[int, int] = {}
    for entry in zones:
        if entry.table_count <= 0:
            raise ValueError("table_count must be positive")
        requested[entry.zone_id] = requested.get(entry.zone_id, 0) + entry.table_count

    # ascending id order, shared with every other writer of these rows
    locked = {zone.id: zone for zone in await zone_repo.list_for_update(sorted(requested))}
    for zone_id in sorted(requested):
        zone = locked.get(zone_id)
        if zone is None:
            raise NoSuchZone("tariff zone not found", zone_id=zone_id)
        if zone.festival_id != reservation.festival_id:
            raise CrossFestivalMismatch(
                "tariff zone belongs to another festival",
                reservation_id=reservation.id,
                zone_id=zone.id,
                reservation_festival_id=reservation.festival_id,
                zone_festival_id=zone.festival_id,
            )
        snapshot = CommitmentSnapshot(
            zone_id=zone.id,
            quota=zone.table_quota,
            committed=await zone_repo.sum_committed(zone.id),
        )
        try:
            validate_commitment(snapshot, table_count=requested[zone_id])
        except DomainError as exc:
            logger.info("commitment rejected for reservation %s: %s", reservation.id, exc.to_dict())
            raise

    commitments = []
    for zone_id in sorted(requested):
        zone = locked[zone_id]
        commitments.append(
            await reservation_repo.add_commitment(
                reservation_id=reservation.id,
                tariff_zone_id=zone.id,
                table_count=requested[zone_id],
                unit_price=zone.price_per_table,
            )
        )
    return commitments


async def budget(reservation_repo: ReservationRepository, *, reservation_id: int) -> int:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await reservation_repo.sum_committed(reservation.id)


async def consumed(reservation_repo: ReservationRepository, *, reservation_id: int) -> int:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await reservation_repo.sum_placed(reservation.id)


async def remaining(reservation_repo: ReservationRepository, *, reservation_id: int) -> int:
    summary = await budget_summary(reservation_repo, reservation_id=reservation_id)
    return summary.remaining


async def budget_summary(reservation_repo: ReservationRepository, *, reservation_id: int) -> ReservationBudget:
    # recomputed from both sums on every read, never stored
    reservation = await require_reservation(reservation_repo, reservation_id)
    return ReservationBudget(
        reservation_id=reservation.id,
        budget=await reservation_repo.sum_committed(reservation.id),
        consumed=await reservation_repo.sum_placed(reservation.id),
    )


async def list_commitments(
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
) -> list[tuple[ReservationZone, str]]:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await reservation_repo.list_commitments(reservation.id)


async def update_reservation(
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
    changes: Mapping[str, Any],
) -> Reservation:
    reservation = await require_reservation(reservation_repo, reservation_id, for_update=True)
    updates = changed_fields(
        reservation, changes, allowed=RESERVATION_FIELDS, required=RESERVATION_FIELDS - {"notes"}
    )
    if not updates:
        return reservation

    for key in ("outlet_count", "table_discount", "amount_discount"):
        if key in updates and (updates[key] is None or updates[key] < 0):
            raise ValueError(f"{key} must be >= 0")

    for key, value in updates.items():
        if key in ("table_discount", "amount_discount"):
            value = Decimal(value)
        setattr(reservation, key, value)
    return await reservation_repo.update(reservation)


async def set_contact_state(
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
    contact_state: ContactState,
) -> Reservation:
    return await update_reservation(
        reservation_repo, reservation_id=reservation_id, changes={"contact_state": contact_state}
    )


async def set_presence_state(
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
    presence_state: PresenceState,
) -> Reservation:
    return await update_reservation(
        reservation_repo, reservation_id=reservation_id, changes={"presence_state": presence_state}
    )


async def delete_reservation(
    reservation_repo: ReservationRepository,
    invoice_repo: InvoiceRepository,
    *,
    reservation_id: int,
) -> Reservation:
    """Deletes a reservation with its commitments, games, contacts and unpaid invoice."""
    reservation = await require_reservation(reservation_repo, reservation_id, for_update=True)
    invoice = await invoice_repo.get_by_reservation(reservation.id, for_update=True)
    if invoice is not None:
        if invoice.payment_status == PaymentStatus.PAID:
            raise InvoicePaid(
                "reservation has a paid invoice",
                reservation_id=reservation.id,
                invoice_id=invoice.id,
            )
        logger.info("deleting reservation %s drops its invoice %s", reservation.id, invoice.number)
    await reservation_repo.delete(reservation)
    return reservation


async def list_reservations(
    festival_repo: FestivalRepository,
    reservation_repo: ReservationRepository,
    *,
    festival_id: int,
) -> list[Reservation]:
    festival = await require_festival(festival_repo, festival_id)
    return await reservation_repo.list_for_festival(festival.id)


async def log_contact(
    reservation_repo: ReservationRepository,
    *,
    reservation_id: int,
    contacted_at: datetime | None = None,
    contact_type: str | None = None,
    notes: str | None = None,
) -> ReservationContact:
    """Appends an entry to the contact log. It does not move the contact workflow state."""
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await reservation_repo.add_contact(
        reservation_id=reservation.id,
        contacted_at=to_utc_naive(contacted_at) if contacted_at is not None else utc_now_naive(),
        contact_type=contact_type,
        notes=notes,
    )


async def list_contacts(reservation_repo: ReservationRepository, *, reservation_id: int) -> list[ReservationContact]:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await reservation_repo.list_contacts(reservation.id)


async def add_game(
    reservation_repo: ReservationRepository,
    game_repo: GameInstanceRepository,
    *,
    reservation_id: int,
    game_id: int,
    copies: int = 1,
    estimated_tables: int = 1,
) -> GameInstance:
    """Registers a game for a reservation, unplaced. `estimated_tables` is a planning figure only."""
    reservation = await require_reservation(reservation_repo, reservation_id)
    if copies < 1:
        raise ValueError("copies must be >= 1")
    if estimated_tables < 0:
        raise ValueError("estimated_tables must be >= 0")
    return await game_repo.create(
        reservation_id=reservation.id,
        game_id=game_id,
        copies=copies,
        estimated_tables=estimated_tables,
    )


async def _require_game_of(
    game_repo: GameInstanceRepository,
    *,
    reservation_id: int,
    game_instance_id: int,
) -> GameInstance:
    game = await game_repo.get_for_update(game_instance_id)
    if game is None or game.reservation_id != reservation_id:
        raise NoSuchGameInstance(
            "game not found in this reservation",
            reservation_id=reservation_id,
            game_instance_id=game_instance_id,
        )
    return game


async def remove_game(
    game_repo: GameInstanceRepository,
    *,
    reservation_id: int,
    game_instance_id: int,
) -> GameInstance:
    game = await _require_game_of(game_repo, reservation_id=reservation_id, game_instance_id=game_instance_id)
    await game_repo.delete(game)
    return game


async def mark_game_received(
    game_repo: GameInstanceRepository,
    *,
    reservation_id: int,
    game_instance_id: int,
    received: bool,
) -> GameInstance:
    game = await _require_game_of(game_repo, reservation_id=reservation_id, game_instance_id=game_instance_id)
    game.received = received
    return await game_repo.update(game)


async def list_games(
    reservation_repo: ReservationRepository,
    game_repo: GameInstanceRepository,
    *,
    reservation_id: int,
) -> list[GameInstance]:
    reservation = await require_reservation(reservation_repo, reservation_id)
    return await game_repo.list_for_reservation(reservation.id)


async def list_unplaced_games(
    festival_repo: FestivalRepository,
    game_repo: GameInstanceRepository,
    *,
    festival_id: int,
) -> list[GameInstance]:
    festival = await require_festival(festival_repo, festival_id)
    return await game_repo.list_unplaced(festival.id)
