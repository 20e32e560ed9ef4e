import logging
from typing import Any, Dict, List, Mapping

from ..domain.errors import DuplicateName, NoSuchZone, ZoneInUse
from ..domain.repositories import FestivalRepository, GameInstanceRepository, PlanZoneRepository
from ..domain.services import QuotaSnapshot, changed_fields, validate_shrink, validate_zone_quota
from ..models import GameInstance, PlanZone
from .festivals import require_festival

logger = logging.getLogger(__name__)

PLAN_ZONE_FIELDS = frozenset({"name", "table_quota"})


async def create_plan_zone(
    festival_repo: FestivalRepository,
    zone_repo: PlanZoneRepository,
    *,
    festival_id: int,
    name: str,
    table_quota: int,
) -> PlanZone:
    festival = await require_festival(festival_repo, festival_id, for_update=True)

    if await zone_repo.find_by_name(festival.id, name) is not None:
        raise DuplicateName("a plan zone with this name already exists", festival_id=festival.id, name=name)

    # the floor plan is its own partition of the festival capacity, unrelated to tariff quotas
    snapshot = QuotaSnapshot(
        festival_id=festival.id,
        capacity=festival.total_tables,
        allocated_elsewhere=await zone_repo.sum_quota(festival.id),
    )
    validate_zone_quota(snapshot, quota=table_quota, zone_kind="plan zone")
    return await zone_repo.create(festival_id=festival.id, name=name, table_quota=table_quota)


async def update_plan_zone(
    festival_repo: FestivalRepository,
    zone_repo: PlanZoneRepository,
    *,
    zone_id: int,
    changes: Mapping[str, Any],
) -> PlanZone:
    festival_id = await zone_repo.festival_id_of(zone_id)
    if festival_id is None:
        raise NoSuchZone("plan zone not found", zone_id=zone_id)
    festival = await require_festival(festival_repo, festival_id, for_update=True)
    zone = await zone_repo.get_for_update(zone_id)
    if zone is None:
        raise NoSuchZone("plan zone not found", zone_id=zone_id)

    updates = changed_fields(zone, changes, allowed=PLAN_ZONE_FIELDS, required=PLAN_ZONE_FIELDS)
    if not updates:
        return zone

    if "name" in updates:
        other = await zone_repo.find_by_name(zone.festival_id, updates["name"])
        if other is not None and other.id != zone.id:
            raise DuplicateName(
                "a plan zone with this name already exists",
                festival_id=zone.festival_id,
                name=updates["name"],
            )

    if "table_quota" in updates:
        new_quota = int(updates["table_quota"])
        if new_quota > zone.table_quota:
            snapshot = QuotaSnapshot(
                festival_id=festival.id,
                capacity=festival.total_tables,
                allocated_elsewhere=await zone_repo.sum_quota(festival.id, exclude_zone_id=zone.id),
            )
            validate_zone_quota(snapshot, quota=new_quota, zone_kind="plan zone")
        else:
            validate_shrink(zone_id=zone.id, quota=new_quota, in_use=await zone_repo.sum_occupied(zone.id))
        logger.info("plan zone %s resized from %s to %s tables", zone.id, zone.table_quota, new_quota)
        zone.table_quota = new_quota

    if "name" in updates:
        zone.name = updates["name"]

    return await zone_repo.update(zone)


async def resize_plan_zone(
    festival_repo: FestivalRepository,
    zone_repo: PlanZoneRepository,
    *,
    zone_id: int,
    table_quota: int,
) -> PlanZone:
    return await update_plan_zone(festival_repo, zone_repo, zone_id=zone_id, changes={"table_quota": table_quota})


async def delete_plan_zone(zone_repo: PlanZoneRepository, *, zone_id: int) -> PlanZone:
    zone = await zone_repo.get_for_update(zone_id)
    if zone is None:
        raise NoSuchZone("plan zone not found", zone_id=zone_id)
    placed = await zone_repo.count_placed_games(zone.id)
    if placed > 0:
        raise ZoneInUse("games are placed in this plan zone", zone_id=zone.id, placed_games=placed)
    await zone_repo.delete(zone)
    return zone


async def get_plan_zone(zone_repo: PlanZoneRepository, *, zone_id: int) -> PlanZone:
    zone = await zone_repo.get(zone_id)
    if zone is None:
        raise NoSuchZone("plan zone not found", zone_id=zone_id)
    return zone


async def occupied_tables(zone_repo: PlanZoneRepository, *, zone_id: int) -> int:
    zone = await get_plan_zone(zone_repo, zone_id=zone_id)
    return await zone_repo.sum_occupied(zone.id)


async def available_tables(zone_repo: PlanZoneRepository, *, zone_id: int) -> int:
    zone = await get_plan_zone(zone_repo, zone_id=zone_id)
    return zone.table_quota - await zone_repo.sum_occupied(zone.id)


async def list_plan_zones(
    festival_repo: FestivalRepository,
    zone_repo: PlanZoneRepository,
    *,
    festival_id: int,
) -> List[Dict[str, Any]]:
    await require_festival(festival_repo, festival_id)
    rows = await zone_repo.list_with_occupancy(festival_id)
    return [
        {
            "zone": zone,
            "occupied": occupied,
            "available": zone.table_quota - occupied,
            "placed_games": placed_games,
        }
        for zone, occupied, placed_games in rows
    ]


async def list_zone_games(
    zone_repo: PlanZoneRepository,
    game_repo: GameInstanceRepository,
    *,
    zone_id: int,
) -> list[GameInstance]:
    zone = await get_plan_zone(zone_repo, zone_id=zone_id)
    return await game_repo.list_in_zone(zone.id)
