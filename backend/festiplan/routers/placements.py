from typing import Any

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import (
    SqlAlchemyGameInstanceRepository,
    SqlAlchemyPlanZoneRepository,
    SqlAlchemyReservationRepository,
)
from ..schemas import GameInstanceRead, PlacementRequest
from ..usecases import placements as placement_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/games", tags=["placements"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


@router.put("/{game_instance_id}/placement", response_model=GameInstanceRead)
async def place_game(
    payload: PlacementRequest,
    game_instance_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> GameInstanceRead:
    zone_repo = SqlAlchemyPlanZoneRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        async with session.begin():
            game = await placement_usecase.place_game(
                zone_repo,
                res_repo,
                game_repo,
                game_instance_id=game_instance_id,
                plan_zone_id=payload.plan_zone_id,
                standard=payload.standard_tables,
                large=payload.large_tables,
                municipal=payload.municipal_tables,
            )

    _audit(
        action="game.placed",
        reservation_id=game.reservation_id,
        zone_id=game.plan_zone_id,
        game_instance_id=game.id,
        extra={
            "standard_tables": game.standard_tables,
            "large_tables": game.large_tables,
            "municipal_tables": game.municipal_tables,
        },
    )
    return GameInstanceRead.from_db(game=game)


@router.delete("/{game_instance_id}/placement", response_model=GameInstanceRead)
async def remove_game(
    game_instance_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> GameInstanceRead:
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        async with session.begin():
            game = await placement_usecase.remove_game(game_repo, game_instance_id=game_instance_id)

    _audit(action="game.unplaced", reservation_id=game.reservation_id, game_instance_id=game.id)
    return GameInstanceRead.from_db(game=game)
