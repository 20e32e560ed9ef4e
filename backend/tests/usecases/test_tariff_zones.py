from decimal import Decimal

import pytest
from festiplan.domain.errors import (
    CapacityExceeded,
    DuplicateName,
    InsufficientCapacity,
    NoSuchFestival,
    NoSuchZone,
    ZoneInUse,
)
from festiplan.usecases import reservations as res_uc
from festiplan.usecases import tariff_zones as uc


async def _zone(repos, festival_id: int, name: str = "A", quota: int = 60, price: str = "20"):
    return await uc.create_tariff_zone(
        repos.festivals,
        repos.tariff_zones,
        festival_id=festival_id,
        name=name,
        table_quota=quota,
        price_per_table=Decimal(price),
    )


@pytest.mark.asyncio
async def test_second_zone_over_festival_capacity_fails(repos) -> None:
    festival = repos.store.add_festival(total_tables=100)
    await _zone(repos, festival.id, "A", 60, "20")
    with pytest.raises(CapacityExceeded):
        await _zone(repos, festival.id, "B", 50, "15")
    assert len(repos.store.tariff_zones) == 1


@pytest.mark.asyncio
async def test_create_defaults_area_price_and_locks_festival(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id, price="45")
    assert zone.price_per_area == Decimal("10.00")
    assert repos.store.locks[0] == ("festival", festival.id)


@pytest.mark.asyncio
async def test_create_on_unknown_festival(repos) -> None:
    with pytest.raises(NoSuchFestival):
        await _zone(repos, 999)


@pytest.mark.asyncio
async def test_duplicate_name_in_festival(repos) -> None:
    festival = repos.store.add_festival()
    await _zone(repos, festival.id, "A", 10)
    with pytest.raises(DuplicateName):
        await _zone(repos, festival.id, "A", 10)


@pytest.mark.asyncio
async def test_resize_checks_capacity_and_commitments(repos) -> None:
    festival = repos.store.add_festival(total_tables=100)
    zone = await _zone(repos, festival.id, "A", 60)
    await _zone(repos, festival.id, "B", 30)
    reservation, _ = await res_uc.create_reservation(
        repos.festivals,
        repos.reservations,
        repos.tariff_zones,
        festival_id=festival.id,
        reservant_id=7,
        zones=[res_uc.ZoneRequest(zone_id=zone.id, table_count=10)],
    )
    assert reservation.id

    with pytest.raises(CapacityExceeded):
        await uc.resize_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=zone.id, table_quota=71)
    with pytest.raises(InsufficientCapacity):
        await uc.resize_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=zone.id, table_quota=9)

    resized = await uc.resize_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=zone.id, table_quota=70)
    assert resized.table_quota == 70
    assert await uc.available_tables(repos.tariff_zones, zone_id=zone.id) == 60


@pytest.mark.asyncio
async def test_price_is_frozen_once_committed(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id, "A", 20, "20")
    await res_uc.create_reservation(
        repos.festivals,
        repos.reservations,
        repos.tariff_zones,
        festival_id=festival.id,
        reservant_id=1,
        zones=[res_uc.ZoneRequest(zone_id=zone.id, table_count=5)],
    )
    with pytest.raises(ZoneInUse):
        await uc.update_tariff_zone(
            repos.festivals, repos.tariff_zones, zone_id=zone.id, changes={"price_per_table": Decimal("25")}
        )
    assert zone.price_per_table == Decimal("20.00")


@pytest.mark.asyncio
async def test_price_change_recomputes_area_price_before_commitments(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id, "A", 20, "20")
    updated = await uc.update_tariff_zone(
        repos.festivals, repos.tariff_zones, zone_id=zone.id, changes={"price_per_table": Decimal("9")}
    )
    assert updated.price_per_table == Decimal("9.00")
    assert updated.price_per_area == Decimal("2.00")


@pytest.mark.asyncio
async def test_update_rejects_unknown_field(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id)
    with pytest.raises(ValueError):
        await uc.update_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=zone.id, changes={"color": "red"})


@pytest.mark.asyncio
async def test_delete_zone_with_commitment_fails(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id, "A", 60)
    await res_uc.create_reservation(
        repos.festivals,
        repos.reservations,
        repos.tariff_zones,
        festival_id=festival.id,
        reservant_id=1,
        zones=[res_uc.ZoneRequest(zone_id=zone.id, table_count=10)],
    )
    with pytest.raises(ZoneInUse) as excinfo:
        await uc.delete_tariff_zone(repos.tariff_zones, zone_id=zone.id)
    assert excinfo.value.details["commitments"] == 1
    assert zone.id in repos.store.tariff_zones


@pytest.mark.asyncio
async def test_list_reports_reserved_and_available(repos) -> None:
    festival = repos.store.add_festival()
    zone = await _zone(repos, festival.id, "A", 60)
    await res_uc.create_reservation(
        repos.festivals,
        repos.reservations,
        repos.tariff_zones,
        festival_id=festival.id,
        reservant_id=1,
        zones=[res_uc.ZoneRequest(zone_id=zone.id, table_count=12)],
    )
    rows = await uc.list_tariff_zones(repos.festivals, repos.tariff_zones, festival_id=festival.id)
    assert rows == [{"zone": zone, "reserved": 12, "available": 48}]


@pytest.mark.asyncio
async def test_resize_sees_quotas_committed_while_waiting_for_the_festival_lock(repos) -> None:
    festival = repos.store.add_festival(total_tables=100)
    zone_a = await _zone(repos, festival.id, "A", 10)
    zone_b = await _zone(repos, festival.id, "B", 90)
    repos.store.reads.clear()

    def other_transaction(kind: str, row_id: int) -> None:
        # shrinks A to 5 then grows B to 95 and commits before our festival lock is granted
        if kind == "festival":
            repos.store.on_lock = None
            zone_a.table_quota = 5
            zone_b.table_quota = 95

    repos.store.on_lock = other_transaction
    with pytest.raises(CapacityExceeded):
        await uc.resize_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=zone_a.id, table_quota=8)

    assert zone_a.table_quota + zone_b.table_quota == 100
    assert repos.store.reads == []
    assert repos.store.locks[-2:] == [("festival", festival.id), ("tariff_zone", zone_a.id)]


@pytest.mark.asyncio
async def test_update_unknown_tariff_zone_takes_no_lock(repos) -> None:
    with pytest.raises(NoSuchZone):
        await uc.resize_tariff_zone(repos.festivals, repos.tariff_zones, zone_id=999, table_quota=1)
    assert repos.store.locks == []
