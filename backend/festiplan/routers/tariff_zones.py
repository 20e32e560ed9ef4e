from typing import Any, List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import SqlAlchemyFestivalRepository, SqlAlchemyTariffZoneRepository
from ..schemas import TariffZoneCreate, TariffZoneRead, TariffZoneUpdate, ZoneResize
from ..usecases import tariff_zones as tariff_zone_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="", tags=["tariff-zones"])

_DUPLICATE = "a tariff zone with this name already exists for this festival"


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


@router.get("/festivals/{festival_id}/tariff-zones", response_model=List[TariffZoneRead])
async def list_tariff_zones(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[TariffZoneRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors():
        rows = await tariff_zone_usecase.list_tariff_zones(festival_repo, zone_repo, festival_id=festival_id)
    return [TariffZoneRead.from_db(zone=entry["zone"], reserved=entry["reserved"]) for entry in rows]


@router.post(
    "/festivals/{festival_id}/tariff-zones",
    response_model=TariffZoneRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_tariff_zone(
    payload: TariffZoneCreate,
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> TariffZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors(_DUPLICATE):
        async with session.begin():
            zone = await tariff_zone_usecase.create_tariff_zone(
                festival_repo,
                zone_repo,
                festival_id=festival_id,
                name=payload.name,
                table_quota=payload.table_quota,
                price_per_table=payload.price_per_table,
                price_per_area=payload.price_per_area,
            )

    _audit(
        action="tariff_zone.created",
        festival_id=zone.festival_id,
        zone_id=zone.id,
        extra={"table_quota": zone.table_quota, "price_per_table": zone.price_per_table},
    )
    return TariffZoneRead.from_db(zone=zone, reserved=0)


@router.get("/tariff-zones/{zone_id}", response_model=TariffZoneRead)
async def get_tariff_zone(
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> TariffZoneRead:
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors():
        zone = await tariff_zone_usecase.get_tariff_zone(zone_repo, zone_id=zone_id)
        reserved = await zone_repo.sum_committed(zone.id)
    return TariffZoneRead.from_db(zone=zone, reserved=reserved)


@router.patch("/tariff-zones/{zone_id}", response_model=TariffZoneRead)
async def update_tariff_zone(
    payload: TariffZoneUpdate,
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> TariffZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    changes = payload.changes()
    with translate_errors(_DUPLICATE):
        async with session.begin():
            zone = await tariff_zone_usecase.update_tariff_zone(
                festival_repo, zone_repo, zone_id=zone_id, changes=changes
            )

    _audit(action="tariff_zone.updated", festival_id=zone.festival_id, zone_id=zone.id, extra=changes)
    return TariffZoneRead.from_db(zone=zone)


@router.put("/tariff-zones/{zone_id}/quota", response_model=TariffZoneRead)
async def resize_tariff_zone(
    payload: ZoneResize,
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> TariffZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors():
        async with session.begin():
            zone = await tariff_zone_usecase.resize_tariff_zone(
                festival_repo, zone_repo, zone_id=zone_id, table_quota=payload.table_quota
            )

    _audit(
        action="tariff_zone.updated",
        festival_id=zone.festival_id,
        zone_id=zone.id,
        extra={"table_quota": zone.table_quota},
    )
    return TariffZoneRead.from_db(zone=zone)


@router.delete("/tariff-zones/{zone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tariff_zone(
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors("tariff zone is still referenced by reservations"):
        async with session.begin():
            zone = await tariff_zone_usecase.delete_tariff_zone(zone_repo, zone_id=zone_id)

    _audit(action="tariff_zone.deleted", festival_id=zone.festival_id, zone_id=zone.id)
