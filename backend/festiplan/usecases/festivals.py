from ..domain.errors import NoSuchFestival
from ..domain.repositories import FestivalRepository
from ..models import Festival


async def require_festival(
    festival_repo: FestivalRepository,
    festival_id: int,
    *,
    for_update: bool = False,
) -> Festival:
    if for_update:
        festival = await festival_repo.get_for_update(festival_id)
    else:
        festival = await festival_repo.get(festival_id)
    if festival is None:
        raise NoSuchFestival("festival not found", festival_id=festival_id)
    return festival


async def get_current_festival(festival_repo: FestivalRepository) -> Festival | None:
    return await festival_repo.get_current()


async def set_current_festival(festival_repo: FestivalRepository, *, festival_id: int) -> Festival:
    """Points the registry at `festival_id`; the previous current festival is cleared by the same write."""
    festival = await require_festival(festival_repo, festival_id, for_update=True)
    await festival_repo.set_current(festival.id)
    return festival
