from typing import Any, List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import audit_failed, get_session, translate_errors
from ..infrastructure.repositories import (
    SqlAlchemyFestivalRepository,
    SqlAlchemyGameInstanceRepository,
    SqlAlchemyInvoiceRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyTariffZoneRepository,
)
from ..schemas import (
    BudgetRead,
    CommitmentRead,
    CommitZonesRequest,
    ContactCreate,
    ContactRead,
    ContactStateUpdate,
    GameAdd,
    GameInstanceRead,
    GameReceived,
    PresenceStateUpdate,
    ReservationCreate,
    ReservationRead,
    ReservationUpdate,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="", tags=["reservations"])

_DUPLICATE = "a reservation already exists for this reservant at this festival"


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise audit_failed() from exc


def _requests(items) -> list[reservation_usecase.ZoneRequest]:
    return [reservation_usecase.ZoneRequest(zone_id=i.zone_id, table_count=i.table_count) for i in items]


@router.post(
    "/festivals/{festival_id}/reservations",
    response_model=ReservationRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationCreate,
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationRead:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors(_DUPLICATE):
        async with session.begin():
            reservation, commitments = await reservation_usecase.create_reservation(
                festival_repo,
                res_repo,
                zone_repo,
                festival_id=festival_id,
                reservant_id=payload.reservant_id,
                contact_state=payload.contact_state,
                presence_state=payload.presence_state,
                outlet_count=payload.outlet_count,
                notes=payload.notes,
                will_animate=payload.will_animate,
                zones=_requests(payload.zones),
            )

    _audit(
        action="reservation.created",
        festival_id=reservation.festival_id,
        reservation_id=reservation.id,
        extra={"reservant_id": reservation.reservant_id, "zones": len(commitments)},
    )
    return ReservationRead.from_db(
        reservation=reservation,
        commitments=[CommitmentRead.from_db(commitment=c) for c in commitments],
    )


@router.get("/festivals/{festival_id}/reservations", response_model=List[ReservationRead])
async def list_reservations(
    festival_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[ReservationRead]:
    festival_repo = SqlAlchemyFestivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        reservations = await reservation_usecase.list_reservations(festival_repo, res_repo, festival_id=festival_id)
    return [ReservationRead.from_db(reservation=reservation) for reservation in reservations]


@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        reservation = await reservation_usecase.require_reservation(res_repo, reservation_id)
        commitments = await res_repo.list_commitments(reservation.id)
        contacts = await res_repo.list_contacts(reservation.id)
    return ReservationRead.from_db(
        reservation=reservation,
        commitments=[CommitmentRead.from_db(commitment=c, zone_name=name) for c, name in commitments],
        contacts=[ContactRead.from_db(contact=contact) for contact in contacts],
    )


@router.patch("/reservations/{reservation_id}", response_model=ReservationRead)
async def update_reservation(
    payload: ReservationUpdate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    changes = payload.changes()
    with translate_errors():
        async with session.begin():
            reservation = await reservation_usecase.update_reservation(
                res_repo, reservation_id=reservation_id, changes=changes
            )

    _audit(
        action="reservation.updated",
        festival_id=reservation.festival_id,
        reservation_id=reservation.id,
        extra=changes,
    )
    return ReservationRead.from_db(reservation=reservation)


@router.patch("/reservations/{reservation_id}/workflow/contact", response_model=ReservationRead)
async def set_contact_state(
    payload: ContactStateUpdate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        async with session.begin():
            locked = await reservation_usecase.require_reservation(res_repo, reservation_id, for_update=True)
            previous = locked.contact_state
            reservation = await reservation_usecase.set_contact_state(
                res_repo, reservation_id=reservation_id, contact_state=payload.contact_state
            )

    _audit(
        action="reservation.updated",
        festival_id=reservation.festival_id,
        reservation_id=reservation.id,
        status_from=previous,
        status_to=reservation.contact_state,
    )
    return ReservationRead.from_db(reservation=reservation)


@router.patch("/reservations/{reservation_id}/workflow/presence", response_model=ReservationRead)
async def set_presence_state(
    payload: PresenceStateUpdate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        async with session.begin():
            locked = await reservation_usecase.require_reservation(res_repo, reservation_id, for_update=True)
            previous = locked.presence_state
            reservation = await reservation_usecase.set_presence_state(
                res_repo, reservation_id=reservation_id, presence_state=payload.presence_state
            )

    _audit(
        action="reservation.updated",
        festival_id=reservation.festival_id,
        reservation_id=reservation.id,
        status_from=previous,
        status_to=reservation.presence_state,
    )
    return ReservationRead.from_db(reservation=reservation)


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    res_repo = SqlAlchemyReservationRepository(session)
    invoice_repo = SqlAlchemyInvoiceRepository(session)
    with translate_errors():
        async with session.begin():
            reservation = await reservation_usecase.delete_reservation(
                res_repo, invoice_repo, reservation_id=reservation_id
            )

    _audit(action="reservation.deleted", festival_id=reservation.festival_id, reservation_id=reservation.id)


@router.get("/reservations/{reservation_id}/contacts", response_model=List[ContactRead])
async def list_contacts(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[ContactRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        contacts = await reservation_usecase.list_contacts(res_repo, reservation_id=reservation_id)
    return [ContactRead.from_db(contact=contact) for contact in contacts]


@router.post(
    "/reservations/{reservation_id}/contacts",
    response_model=ContactRead,
    status_code=status.HTTP_201_CREATED,
)
async def log_contact(
    payload: ContactCreate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> ContactRead:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        async with session.begin():
            contact = await reservation_usecase.log_contact(
                res_repo,
                reservation_id=reservation_id,
                contacted_at=payload.contacted_at,
                contact_type=payload.contact_type,
                notes=payload.notes,
            )

    _audit(
        action="reservation.contact_logged",
        reservation_id=contact.reservation_id,
        extra={"contact_id": contact.id, "contact_type": contact.contact_type},
    )
    return ContactRead.from_db(contact=contact)


@router.post(
    "/reservations/{reservation_id}/zones",
    response_model=List[CommitmentRead],
    status_code=status.HTTP_201_CREATED,
)
async def commit_zones(
    payload: CommitZonesRequest,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[CommitmentRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    zone_repo = SqlAlchemyTariffZoneRepository(session)
    with translate_errors():
        async with session.begin():
            commitments = await reservation_usecase.commit_zones(
                res_repo, zone_repo, reservation_id=reservation_id, zones=_requests(payload.zones)
            )

    _audit(
        action="reservation.zones_committed",
        reservation_id=reservation_id,
        extra={"zones": {str(c.tariff_zone_id): c.table_count for c in commitments}},
    )
    return [CommitmentRead.from_db(commitment=c) for c in commitments]


@router.get("/reservations/{reservation_id}/budget", response_model=BudgetRead)
async def get_budget(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> BudgetRead:
    res_repo = SqlAlchemyReservationRepository(session)
    with translate_errors():
        summary = await reservation_usecase.budget_summary(res_repo, reservation_id=reservation_id)
        commitments = await res_repo.list_commitments(summary.reservation_id)
    return BudgetRead(
        reservation_id=summary.reservation_id,
        budget=summary.budget,
        consumed=summary.consumed,
        remaining=summary.remaining,
        commitments=[CommitmentRead.from_db(commitment=c, zone_name=name) for c, name in commitments],
    )


@router.get("/reservations/{reservation_id}/games", response_model=List[GameInstanceRead])
async def list_games(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> list[GameInstanceRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        games = await reservation_usecase.list_games(res_repo, game_repo, reservation_id=reservation_id)
    return [GameInstanceRead.from_db(game=game) for game in games]


@router.post(
    "/reservations/{reservation_id}/games",
    response_model=GameInstanceRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_game(
    payload: GameAdd,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> GameInstanceRead:
    res_repo = SqlAlchemyReservationRepository(session)
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        async with session.begin():
            game = await reservation_usecase.add_game(
                res_repo,
                game_repo,
                reservation_id=reservation_id,
                game_id=payload.game_id,
                copies=payload.copies,
                estimated_tables=payload.estimated_tables,
            )

    _audit(
        action="game.added",
        reservation_id=game.reservation_id,
        game_instance_id=game.id,
        extra={"game_id": game.game_id, "copies": game.copies},
    )
    return GameInstanceRead.from_db(game=game)


@router.delete("/reservations/{reservation_id}/games/{game_instance_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_game(
    reservation_id: int = Path(..., ge=1),
    game_instance_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        async with session.begin():
            game = await reservation_usecase.remove_game(
                game_repo, reservation_id=reservation_id, game_instance_id=game_instance_id
            )

    _audit(action="game.removed", reservation_id=game.reservation_id, game_instance_id=game.id)


@router.patch(
    "/reservations/{reservation_id}/games/{game_instance_id}/received",
    response_model=GameInstanceRead,
)
async def mark_game_received(
    payload: GameReceived,
    reservation_id: int = Path(..., ge=1),
    game_instance_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> GameInstanceRead:
    game_repo = SqlAlchemyGameInstanceRepository(session)
    with translate_errors():
        async with session.begin():
            game = await reservation_usecase.mark_game_received(
                game_repo,
                reservation_id=reservation_id,
                game_instance_id=game_instance_id,
                received=payload.received,
            )
    return GameInstanceRead.from_db(game=game)
