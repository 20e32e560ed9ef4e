from typing import Any, List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import (
    SqlAlchemyFestivalRepository,
    SqlAlchemyGameInstanceRepository,
    SqlAlchemyPlanZoneRepository,
)
from ..schemas import GameInstanceRead, PlanZoneCreate, PlanZoneRead, PlanZoneUpdate, ZoneResize
from ..usecases import plan_zones as plan_zone_usecase
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="", tags=["plan-zones"])

_DUPLICATE = "a plan zone with this name already exists for this festival"


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


@router.get("/festivals/{festival_id}/plan-zones", response_model=List[PlanZoneRead])
async def list_plan_zones(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[PlanZoneRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    with translate_errors():
        rows = await plan_zone_usecase.list_plan_zones(festival_repo, zone_repo, festival_id=festival_id)
    return [
        PlanZoneRead.from_db(zone=entry["zone"], occupied=entry["occupied"], placed_games=entry["placed_games"])
        for entry in rows
    ]


@router.post(
    "/festivals/{festival_id}/plan-zones",
    response_model=PlanZoneRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_plan_zone(
    payload: PlanZoneCreate,
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> PlanZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    with translate_errors(_DUPLICATE):
        async with session.begin():
            zone = await plan_zone_usecase.create_plan_zone(
                festival_repo,
                zone_repo,
                festival_id=festival_id,
                name=payload.name,
                table_quota=payload.table_quota,
            )

    _audit(
        action="plan_zone.created",
        festival_id=zone.festival_id,
        zone_id=zone.id,
        extra={"table_quota": zone.table_quota},
    )
    return PlanZoneRead.from_db(zone=zone, occupied=0, placed_games=0)


@router.get("/festivals/{festival_id}/unplaced-games", response_model=List[GameInstanceRead])
async def list_unplaced_games(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[GameInstanceRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        games = await reservation_usecase.list_unplaced_games(festival_repo, game_repo, festival_id=festival_id)
    return [GameInstanceRead.from_db(game=game) for game in games]


@router.get("/plan-zones/{zone_id}", response_model=PlanZoneRead)
async def get_plan_zone(
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> PlanZoneRead:
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    with translate_errors():
        zone = await plan_zone_usecase.get_plan_zone(zone_repo, zone_id=zone_id)
        occupied = await zone_repo.sum_occupied(zone.id)
        placed = await zone_repo.count_placed_games(zone.id)
    return PlanZoneRead.from_db(zone=zone, occupied=occupied, placed_games=placed)


@router.get("/plan-zones/{zone_id}/games", response_model=List[GameInstanceRead])
async def list_zone_games(
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[GameInstanceRead]:
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        games = await plan_zone_usecase.list_zone_games(zone_repo, game_repo, zone_id=zone_id)
    return [GameInstanceRead.from_db(game=game) for game in games]


@router.patch("/plan-zones/{zone_id}", response_model=PlanZoneRead)
async def update_plan_zone(
    payload: PlanZoneUpdate,
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> PlanZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    changes = payload.changes()
    with translate_errors(_DUPLICATE):
        async with session.begin():
            zone = await plan_zone_usecase.update_plan_zone(festival_repo, zone_repo, zone_id=zone_id, changes=changes)

    _audit(action="plan_zone.updated", festival_id=zone.festival_id, zone_id=zone.id, extra=changes)
    return PlanZoneRead.from_db(zone=zone)


@router.put("/plan-zones/{zone_id}/quota", response_model=PlanZoneRead)
async def resize_plan_zone(
    payload: ZoneResize,
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> PlanZoneRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    with translate_errors():
        async with session.begin():
            zone = await plan_zone_usecase.resize_plan_zone(
                festival_repo, zone_repo, zone_id=zone_id, table_quota=payload.table_quota
            )

    _audit(
        action="plan_zone.updated",
        festival_id=zone.festival_id,
        zone_id=zone.id,
        extra={"table_quota": zone.table_quota},
    )
    return PlanZoneRead.from_db(zone=zone)


@router.delete("/plan-zones/{zone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan_zone(
    zone_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    with translate_errors("plan zone still holds placed games"):
        async with session.begin():
            zone = await plan_zone_usecase.delete_plan_zone(zone_repo, zone_id=zone_id)

    _audit(action="plan_zone.deleted", festival_id=zone.festival_id, zone_id=zone.id)
