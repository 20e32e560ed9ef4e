from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from festiplan.domain.errors import (
    CrossFestivalMismatch,
    InsufficientCapacity,
    InvoicePaid,
    NoSuchFestival,
    NoSuchGameInstance,
    NoSuchReservation,
    NoSuchZone,
    ReservationAlreadyExists,
)
from festiplan.models import ContactState, PresenceState
from festiplan.usecases import invoices as invoice_uc
from festiplan.usecases import reservations as uc
from festiplan.usecases import tariff_zones as zone_uc


async def _setup(repos, *, quota: int = 60):
    festival = repos.store.add_festival(total_tables=100)
    zone = await zone_uc.create_tariff_zone(
        repos.festivals,
        repos.tariff_zones,
        festival_id=festival.id,
        name="A",
        table_quota=quota,
        price_per_table=Decimal("20"),
    )
    reservation, _ = await uc.create_reservation(
        repos.festivals, repos.reservations, repos.tariff_zones, festival_id=festival.id, reservant_id=1
    )
    return festival, zone, reservation


@pytest.mark.asyncio
async def test_commit_sets_budget_and_copies_price(repos) -> None:
    _, zone, reservation = await _setup(repos)
    commitments = await uc.commit_zones(
        repos.reservations,
        repos.tariff_zones,
        reservation_id=reservation.id,
        zones=[uc.ZoneRequest(zone_id=zone.id, table_count=10)],
    )
    assert [(c.tariff_zone_id, c.table_count, c.unit_price) for c in commitments] == [
        (zone.id, 10, Decimal("20.00"))
    ]
    summary = await uc.budget_summary(repos.reservations, reservation_id=reservation.id)
    assert (summary.budget, summary.consumed, summary.remaining) == (10, 0, 10)


@pytest.mark.asyncio
async def test_commit_is_all_or_nothing(repos) -> None:
    festival, zone, reservation = await _setup(repos, quota=10)
    small = await zone_uc.create_tariff_zone(
        repos.festivals,
        repos.tariff_zones,
        festival_id=festival.id,
        name="B",
        table_quota=2,
        price_per_table=Decimal("15"),
    )
    with pytest.raises(InsufficientCapacity):
        await uc.commit_zones(
            repos.reservations,
            repos.tariff_zones,
            reservation_id=reservation.id,
            zones=[uc.ZoneRequest(zone_id=zone.id, table_count=5), uc.ZoneRequest(zone_id=small.id, table_count=3)],
        )
    assert repos.store.commitments == {}


@pytest.mark.asyncio
async def test_commit_aggregates_duplicates_and_locks_in_id_order(repos) -> None:
    festival, zone, reservation = await _setup(repos, quota=10)
    other = await zone_uc.create_tariff_zone(
        repos.festivals,
        repos.tariff_zones,
        festival_id=festival.id,
        name="B",
        table_quota=10,
        price_per_table=Decimal("15"),
    )
    repos.store.locks.clear()
    with pytest.raises(InsufficientCapacity):
        await uc.commit_zones(
            repos.reservations,
            repos.tariff_zones,
            reservation_id=reservation.id,
            zones=[
                uc.ZoneRequest(zone_id=other.id, table_count=1),
                uc.ZoneRequest(zone_id=zone.id, table_count=6),
                uc.ZoneRequest(zone_id=zone.id, table_count=5),
            ],
        )
    assert repos.store.locks == [
        ("reservation", reservation.id),
        ("tariff_zone", zone.id),
        ("tariff_zone", other.id),
    ]


@pytest.mark.asyncio
async def test_commit_unknown_zone(repos) -> None:
    _, _, reservation = await _setup(repos)
    with pytest.raises(NoSuchZone):
        await uc.commit_zones(
            repos.reservations,
            repos.tariff_zones,
            reservation_id=reservation.id,
            zones=[uc.ZoneRequest(zone_id=404, table_count=1)],
        )


@pytest.mark.asyncio
async def test_commit_zone_of_another_festival(repos) -> None:
    _, _, reservation = await _setup(repos)
    other_festival = repos.store.add_festival(name="Other")
    foreign = await zone_uc.create_tariff_zone(
        repos.festivals,
        repos.tariff_zones,
        festival_id=other_festival.id,
        name="A",
        table_quota=10,
        price_per_table=Decimal("10"),
    )
    with pytest.raises(CrossFestivalMismatch):
        await uc.commit_zones(
            repos.reservations,
            repos.tariff_zones,
            reservation_id=reservation.id,
            zones=[uc.ZoneRequest(zone_id=foreign.id, table_count=1)],
        )


@pytest.mark.asyncio
async def test_one_reservation_per_reservant_and_festival(repos) -> None:
    festival, _, _ = await _setup(repos)
    with pytest.raises(ReservationAlreadyExists):
        await uc.create_reservation(
            repos.festivals, repos.reservations, repos.tariff_zones, festival_id=festival.id, reservant_id=1
        )


@pytest.mark.asyncio
async def test_update_converts_discounts_and_rejects_negatives(repos) -> None:
    _, _, reservation = await _setup(repos)
    updated = await uc.update_reservation(
        repos.reservations,
        reservation_id=reservation.id,
        changes={"table_discount": 1.5, "outlet_count": 2},
    )
    assert updated.table_discount == Decimal("1.5")
    assert updated.outlet_count == 2
    with pytest.raises(ValueError):
        await uc.update_reservation(repos.reservations, reservation_id=reservation.id, changes={"outlet_count": -1})


@pytest.mark.asyncio
async def test_workflow_states(repos) -> None:
    _, _, reservation = await _setup(repos)
    await uc.set_contact_state(
        repos.reservations, reservation_id=reservation.id, contact_state=ContactState.GAME_LIST_REQUESTED
    )
    await uc.set_presence_state(repos.reservations, reservation_id=reservation.id, presence_state=PresenceState.PRESENT)
    assert reservation.contact_state is ContactState.GAME_LIST_REQUESTED
    assert reservation.presence_state is PresenceState.PRESENT


@pytest.mark.asyncio
async def test_games_belong_to_their_reservation(repos) -> None:
    festival, _, reservation = await _setup(repos)
    other, _ = await uc.create_reservation(
        repos.festivals, repos.reservations, repos.tariff_zones, festival_id=festival.id, reservant_id=2
    )
    game = await uc.add_game(repos.reservations, repos.games, reservation_id=reservation.id, game_id=42, copies=2)
    assert game.is_placed is False

    with pytest.raises(NoSuchGameInstance):
        await uc.mark_game_received(repos.games, reservation_id=other.id, game_instance_id=game.id, received=True)

    received = await uc.mark_game_received(
        repos.games, reservation_id=reservation.id, game_instance_id=game.id, received=True
    )
    assert received.received is True
    assert await uc.list_unplaced_games(repos.festivals, repos.games, festival_id=festival.id) == [game]

    await uc.remove_game(repos.games, reservation_id=reservation.id, game_instance_id=game.id)
    assert await uc.list_games(repos.reservations, repos.games, reservation_id=reservation.id) == []


@pytest.mark.asyncio
async def test_delete_reservation_releases_commitments(repos) -> None:
    _, zone, reservation = await _setup(repos)
    await uc.commit_zones(
        repos.reservations,
        repos.tariff_zones,
        reservation_id=reservation.id,
        zones=[uc.ZoneRequest(zone_id=zone.id, table_count=10)],
    )
    await uc.delete_reservation(repos.reservations, repos.invoices, reservation_id=reservation.id)
    assert await zone_uc.available_tables(repos.tariff_zones, zone_id=zone.id) == 60


async def _invoiced(repos):
    festival, zone, reservation = await _setup(repos)
    await uc.commit_zones(
        repos.reservations,
        repos.tariff_zones,
        reservation_id=reservation.id,
        zones=[uc.ZoneRequest(zone_id=zone.id, table_count=10)],
    )
    invoice = await invoice_uc.generate_invoice(
        repos.festivals, repos.reservations, repos.invoices, reservation_id=reservation.id
    )
    return zone, reservation, invoice


@pytest.mark.asyncio
async def test_delete_reservation_with_paid_invoice_is_rejected(repos) -> None:
    zone, reservation, invoice = await _invoiced(repos)
    await invoice_uc.set_payment_status(repos.invoices, invoice_id=invoice.id, status="paye")
    repos.store.locks.clear()

    with pytest.raises(InvoicePaid) as excinfo:
        await uc.delete_reservation(repos.reservations, repos.invoices, reservation_id=reservation.id)
    assert excinfo.value.details == {"reservation_id": reservation.id, "invoice_id": invoice.id}
    assert repos.store.locks == [("reservation", reservation.id), ("invoice", invoice.id)]
    assert reservation.id in repos.store.reservations
    assert await zone_uc.available_tables(repos.tariff_zones, zone_id=zone.id) == 50


@pytest.mark.asyncio
async def test_delete_reservation_drops_unpaid_invoice(repos) -> None:
    _, reservation, invoice = await _invoiced(repos)
    await invoice_uc.set_payment_status(repos.invoices, invoice_id=invoice.id, status="partiel")
    await uc.delete_reservation(repos.reservations, repos.invoices, reservation_id=reservation.id)
    assert repos.store.invoices == {}
    assert repos.store.reservations == {}


@pytest.mark.asyncio
async def test_list_reservations_of_festival(repos) -> None:
    festival, _, first = await _setup(repos)
    second, _ = await uc.create_reservation(
        repos.festivals, repos.reservations, repos.tariff_zones, festival_id=festival.id, reservant_id=2
    )
    other = repos.store.add_festival(name="Other")
    await uc.create_reservation(
        repos.festivals, repos.reservations, repos.tariff_zones, festival_id=other.id, reservant_id=1
    )

    listed = await uc.list_reservations(repos.festivals, repos.reservations, festival_id=festival.id)
    assert [r.id for r in listed] == [second.id, first.id]
    with pytest.raises(NoSuchFestival):
        await uc.list_reservations(repos.festivals, repos.reservations, festival_id=999)


@pytest.mark.asyncio
async def test_contact_log_keeps_workflow_state(repos) -> None:
    _, _, reservation = await _setup(repos)
    paris = timezone(timedelta(hours=2))
    first = await uc.log_contact(
        repos.reservations,
        reservation_id=reservation.id,
        contacted_at=datetime(2026, 2, 1, 10, 0, tzinfo=paris),
        contact_type="phone",
    )
    second = await uc.log_contact(repos.reservations, reservation_id=reservation.id, notes="reminder sent")

    assert first.contacted_at == datetime(2026, 2, 1, 8, 0)
    assert second.contacted_at.tzinfo is None
    assert second.contact_type is None
    contacts = await uc.list_contacts(repos.reservations, reservation_id=reservation.id)
    assert [c.id for c in contacts] == [second.id, first.id]
    assert reservation.contact_state is ContactState.NOT_CONTACTED


@pytest.mark.asyncio
async def test_contact_on_unknown_reservation(repos) -> None:
    with pytest.raises(NoSuchReservation):
        await uc.log_contact(repos.reservations, reservation_id=999, contact_type="email")
