from typing import Any, Optional

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import SqlAlchemyFestivalRepository
from ..schemas import FestivalRead
from ..usecases import festivals as festival_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/festivals", tags=["festivals"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


@router.get("/current", response_model=Optional[FestivalRead])
async def get_current_festival(session: AsyncSession = Depends(get_session)) -> Optional[FestivalRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    festival = await festival_usecase.get_current_festival(festival_repo)
    return FestivalRead.from_db(festival=festival) if festival is not None else None


@router.put("/{festival_id}/current", response_model=FestivalRead)
async def set_current_festival(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> FestivalRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    with translate_errors():
        async with session.begin():
            festival = await festival_usecase.set_current_festival(festival_repo, festival_id=festival_id)

    _audit(action="festival.current_set", festival_id=festival.id)
    return FestivalRead.from_db(festival=festival)
