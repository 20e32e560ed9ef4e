import logging

from ..domain.errors import DomainError, NoSuchGameInstance, NoSuchReservation, NoSuchZone
from ..domain.repositories import GameInstanceRepository, PlanZoneRepository, ReservationRepository
from ..domain.services import PlacementSnapshot, validate_placement
from ..models import GameInstance

logger = logging.getLogger(__name__)


async def place_game(
    zone_repo: PlanZoneRepository,
    reservation_repo: ReservationRepository,
    game_repo: GameInstanceRepository,
    *,
    game_instance_id: int,
    plan_zone_id: int,
    standard: int = 0,
    large: int = 0,
    municipal: int = 0,
) -> GameInstance:
    """
    Places (or moves) a game into a plan zone with a per-type table breakdown.

    Locks the plan zone, then the owning reservation, then the game itself, and
    checks both the reservation budget and the zone capacity against totals that
    exclude the game's own current placement. `estimated_tables` is left untouched.
    """
    zone = await zone_repo.get_for_update(plan_zone_id)
    if zone is None:
        raise NoSuchZone("plan zone not found", zone_id=plan_zone_id)
    reservation_id = await game_repo.reservation_id_of(game_instance_id)
    if reservation_id is None:
        raise NoSuchGameInstance("game not found", game_instance_id=game_instance_id)
    reservation = await reservation_repo.get_for_update(reservation_id)
    if reservation is None:
        raise NoSuchReservation("reservation not found", reservation_id=reservation_id)
    game = await game_repo.get_for_update(game_instance_id)
    if game is None:
        raise NoSuchGameInstance("game not found", game_instance_id=game_instance_id)

    snapshot = PlacementSnapshot(
        game_instance_id=game.id,
        reservation_id=reservation.id,
        reservation_festival_id=reservation.festival_id,
        plan_zone_id=zone.id,
        zone_festival_id=zone.festival_id,
        zone_quota=zone.table_quota,
        other_occupancy=await zone_repo.sum_occupied(zone.id, exclude_game_id=game.id),
        budget=await reservation_repo.sum_committed(reservation.id),
        other_consumption=await reservation_repo.sum_placed(reservation.id, exclude_game_id=game.id),
    )
    try:
        validate_placement(snapshot, standard=standard, large=large, municipal=municipal)
    except DomainError as exc:
        logger.info("placement rejected for game %s: %s", game.id, exc.to_dict())
        raise

    game.plan_zone_id = zone.id
    game.standard_tables = standard
    game.large_tables = large
    game.municipal_tables = municipal
    return await game_repo.update(game)


async def remove_game(game_repo: GameInstanceRepository, *, game_instance_id: int) -> GameInstance:
    """Returns a game to the unplaced state. Removing an unplaced game is a no-op, not an error."""
    game = await game_repo.get_for_update(game_instance_id)
    if game is None:
        raise NoSuchGameInstance("game not found", game_instance_id=game_instance_id)
    game.plan_zone_id = None
    game.standard_tables = 0
    game.large_tables = 0
    game.municipal_tables = 0
    return await game_repo.update(game)
