import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping

from ..domain.errors import DuplicateName, NoSuchZone, ZoneInUse
from ..domain.repositories import FestivalRepository, TariffZoneRepository
from ..domain.services import (
    QuotaSnapshot,
    changed_fields,
    default_price_per_area,
    to_money,
    validate_shrink,
    validate_zone_quota,
)
from ..models import TariffZone
from .festivals import require_festival

logger = logging.getLogger(__name__)

TARIFF_ZONE_FIELDS = frozenset({"name", "table_quota", "price_per_table", "price_per_area"})
TARIFF_ZONE_REQUIRED = frozenset({"name", "table_quota", "price_per_table"})


async def create_tariff_zone(
    festival_repo: FestivalRepository,
    zone_repo: TariffZoneRepository,
    *,
    festival_id: int,
    name: str,
    table_quota: int,
    price_per_table: Decimal,
    price_per_area: Decimal | None = None,
) -> TariffZone:
    # festival row lock serializes quota checks of concurrent zone writes
    festival = await require_festival(festival_repo, festival_id, for_update=True)

    if await zone_repo.find_by_name(festival.id, name) is not None:
        raise DuplicateName("a tariff zone with this name already exists", festival_id=festival.id, name=name)

    snapshot = QuotaSnapshot(
        festival_id=festival.id,
        capacity=festival.total_tables,
        allocated_elsewhere=await zone_repo.sum_quota(festival.id),
    )
    validate_zone_quota(snapshot, quota=table_quota, zone_kind="tariff zone")
    if price_per_table < 0:
        raise ValueError("price_per_table must be >= 0")

    return await zone_repo.create(
        festival_id=festival.id,
        name=name,
        table_quota=table_quota,
        price_per_table=to_money(price_per_table),
        price_per_area=to_money(price_per_area) if price_per_area is not None else default_price_per_area(price_per_table),
    )


async def update_tariff_zone(
    festival_repo: FestivalRepository,
    zone_repo: TariffZoneRepository,
    *,
    zone_id: int,
    changes: Mapping[str, Any],
) -> TariffZone:
    """
    Applies an allow-listed patch. Changing only the quota is a resize and stays possible
    once tables are committed; name and prices are frozen from the first commitment on.
    """
    festival_id = await zone_repo.festival_id_of(zone_id)
    if festival_id is None:
        raise NoSuchZone("tariff zone not found", zone_id=zone_id)
    # festival lock first, then the zone row; quota and sums are only read under both
    festival = await require_festival(festival_repo, festival_id, for_update=True)
    zone = await zone_repo.get_for_update(zone_id)
    if zone is None:
        raise NoSuchZone("tariff zone not found", zone_id=zone_id)

    updates = changed_fields(zone, changes, allowed=TARIFF_ZONE_FIELDS, required=TARIFF_ZONE_REQUIRED)
    if not updates:
        return zone

    frozen = sorted(set(updates) - {"table_quota"})
    if frozen and await zone_repo.count_commitments(zone.id) > 0:
        raise ZoneInUse(
            "tariff zone has committed reservations; create a new zone instead",
            zone_id=zone.id,
            fields=frozen,
        )

    if "price_per_table" in updates and updates["price_per_table"] < 0:
        raise ValueError("price_per_table must be >= 0")

    if "name" in updates:
        other = await zone_repo.find_by_name(zone.festival_id, updates["name"])
        if other is not None and other.id != zone.id:
            raise DuplicateName(
                "a tariff zone with this name already exists",
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
            validate_zone_quota(snapshot, quota=new_quota, zone_kind="tariff zone")
        else:
            validate_shrink(zone_id=zone.id, quota=new_quota, in_use=await zone_repo.sum_committed(zone.id))
        logger.info("tariff zone %s resized from %s to %s tables", zone.id, zone.table_quota, new_quota)
        zone.table_quota = new_quota

    if "name" in updates:
        zone.name = updates["name"]
    if "price_per_table" in updates:
        zone.price_per_table = to_money(updates["price_per_table"])
        if "price_per_area" not in changes:
            zone.price_per_area = default_price_per_area(zone.price_per_table)
    if "price_per_area" in updates and updates["price_per_area"] is not None:
        zone.price_per_area = to_money(updates["price_per_area"])

    return await zone_repo.update(zone)


async def resize_tariff_zone(
    festival_repo: FestivalRepository,
    zone_repo: TariffZoneRepository,
    *,
    zone_id: int,
    table_quota: int,
) -> TariffZone:
    return await update_tariff_zone(festival_repo, zone_repo, zone_id=zone_id, changes={"table_quota": table_quota})


async def delete_tariff_zone(zone_repo: TariffZoneRepository, *, zone_id: int) -> TariffZone:
    zone = await zone_repo.get_for_update(zone_id)
    if zone is None:
        raise NoSuchZone("tariff zone not found", zone_id=zone_id)
    commitments = await zone_repo.count_commitments(zone.id)
    if commitments > 0:
        raise ZoneInUse("tariff zone has committed reservations", zone_id=zone.id, commitments=commitments)
    await zone_repo.delete(zone)
    return zone


async def get_tariff_zone(zone_repo: TariffZoneRepository, *, zone_id: int) -> TariffZone:
    zone = await zone_repo.get(zone_id)
    if zone is None:
        raise NoSuchZone("tariff zone not found", zone_id=zone_id)
    return zone


async def available_tables(zone_repo: TariffZoneRepository, *, zone_id: int) -> int:
    zone = await get_tariff_zone(zone_repo, zone_id=zone_id)
    return zone.table_quota - await zone_repo.sum_committed(zone.id)


async def list_tariff_zones(
    festival_repo: FestivalRepository,
    zone_repo: TariffZoneRepository,
    *,
    festival_id: int,
) -> List[Dict[str, Any]]:
    await require_festival(festival_repo, festival_id)
    rows = await zone_repo.list_with_committed(festival_id)
    return [
        {"zone": zone, "reserved": committed, "available": zone.table_quota - committed}
        for zone, committed in rows
    ]
