from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Sequence

from ..models import PaymentStatus
from .errors import (
    CapacityExceeded,
    CrossFestivalMismatch,
    InsufficientCapacity,
    InvalidStatus,
    InvoicePaid,
    PlanZoneCapacityExceeded,
    ReservationBudgetExceeded,
)

# Floor area covered by one table, used to derive the per-m2 price from the per-table price.
TABLE_AREA_M2 = Decimal("4.5")

CENT = Decimal("0.01")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def default_price_per_area(price_per_table: Decimal) -> Decimal:
    return to_money(Decimal(price_per_table) / TABLE_AREA_M2)


def changed_fields(
    current: object,
    changes: Mapping[str, Any],
    *,
    allowed: frozenset[str],
    required: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """
    Filters a patch down to the fields whose value actually differs from `current`.
    Unknown keys, empty patches and nulls for `required` fields raise ValueError.
    """
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValueError(f"unknown fields: {', '.join(unknown)}")
    if not changes:
        raise ValueError("nothing to update")
    nulls = sorted(key for key in required if key in changes and changes[key] is None)
    if nulls:
        raise ValueError(f"fields cannot be null: {', '.join(nulls)}")
    return {key: value for key, value in changes.items() if getattr(current, key) != value}


@dataclass(frozen=True)
class QuotaSnapshot:
    """Capacity of a partition owner (the festival) and what other zones already claim from it."""

    festival_id: int
    capacity: int
    allocated_elsewhere: int


def validate_zone_quota(snapshot: QuotaSnapshot, *, quota: int, zone_kind: str) -> int:
    """
    Ensures a new or resized zone quota fits in the festival capacity.
    Returns the capacity left unallocated afterwards. Raises CapacityExceeded otherwise.
    """
    if quota < 0:
        raise ValueError("table_quota must be >= 0")
    allocated = snapshot.allocated_elsewhere + quota
    if allocated > snapshot.capacity:
        raise CapacityExceeded(
            f"{zone_kind} quotas would exceed the festival table capacity",
            festival_id=snapshot.festival_id,
            capacity=snapshot.capacity,
            allocated=snapshot.allocated_elsewhere,
            requested=quota,
        )
    return snapshot.capacity - allocated


def validate_shrink(*, zone_id: int, quota: int, in_use: int) -> None:
    if quota < in_use:
        raise InsufficientCapacity(
            "zone quota cannot drop below the tables already in use",
            zone_id=zone_id,
            in_use=in_use,
            requested=quota,
        )


@dataclass(frozen=True)
class CommitmentSnapshot:
    zone_id: int
    quota: int
    committed: int


def validate_commitment(snapshot: CommitmentSnapshot, *, table_count: int) -> int:
    """Returns the zone's available tables after committing `table_count`."""
    if table_count <= 0:
        raise ValueError("table_count must be positive")
    available = snapshot.quota - snapshot.committed
    if table_count > available:
        raise InsufficientCapacity(
            "not enough tables left in tariff zone",
            zone_id=snapshot.zone_id,
            available=available,
            requested=table_count,
        )
    return available - table_count


@dataclass(frozen=True)
class PlacementSnapshot:
    game_instance_id: int
    reservation_id: int
    reservation_festival_id: int
    plan_zone_id: int
    zone_festival_id: int
    zone_quota: int
    # occupancy of the target zone, excluding the game being placed
    other_occupancy: int
    budget: int
    # placed tables of the reservation, excluding the game being placed
    other_consumption: int


def validate_placement(snapshot: PlacementSnapshot, *, standard: int, large: int, municipal: int) -> int:
    """
    Pure validation of the three-way placement constraint.
    Returns the requested total. A total matching the remaining capacity exactly is accepted;
    a zero total is accepted too.
    """
    if snapshot.reservation_festival_id != snapshot.zone_festival_id:
        raise CrossFestivalMismatch(
            "game and plan zone belong to different festivals",
            game_instance_id=snapshot.game_instance_id,
            plan_zone_id=snapshot.plan_zone_id,
            game_festival_id=snapshot.reservation_festival_id,
            zone_festival_id=snapshot.zone_festival_id,
        )
    if standard < 0 or large < 0 or municipal < 0:
        raise ValueError("table counts must be >= 0")

    requested = standard + large + municipal
    if snapshot.other_consumption + requested > snapshot.budget:
        raise ReservationBudgetExceeded(
            "placement exceeds the tables reserved by the reservation",
            reservation_id=snapshot.reservation_id,
            budget=snapshot.budget,
            consumed=snapshot.other_consumption,
            requested=requested,
        )
    if snapshot.other_occupancy + requested > snapshot.zone_quota:
        raise PlanZoneCapacityExceeded(
            "placement exceeds the plan zone capacity",
            plan_zone_id=snapshot.plan_zone_id,
            capacity=snapshot.zone_quota,
            occupied=snapshot.other_occupancy,
            requested=requested,
        )
    return requested


@dataclass(frozen=True)
class CommittedLine:
    zone_name: str
    table_count: int
    unit_price: Decimal


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoiceAmounts:
    table_amount: Decimal
    outlet_amount: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    lines: tuple[LineItem, ...] = ()


def compute_invoice(
    commitments: Sequence[CommittedLine],
    *,
    outlet_count: int,
    outlet_unit_price: Decimal,
    table_discount: Decimal,
    amount_discount: Decimal,
) -> InvoiceAmounts:
    """
    Derives the billable amounts of a reservation from its committed zones.

    The table discount is valued at the average committed table price, so a
    reservation spread over several zones gets a blended rate.
    """
    table_revenue = sum((Decimal(c.table_count) * Decimal(c.unit_price) for c in commitments), Decimal("0"))
    committed_tables = sum(c.table_count for c in commitments)
    outlet_revenue = Decimal(outlet_count) * Decimal(outlet_unit_price)
    gross = table_revenue + outlet_revenue

    average_price = table_revenue / committed_tables if committed_tables else Decimal("0")
    table_discount_value = average_price * Decimal(table_discount)
    total_discount = Decimal(amount_discount) + table_discount_value

    lines: list[LineItem] = [
        LineItem(
            description=f"Tables - {c.zone_name}",
            quantity=to_money(c.table_count),
            unit_price=to_money(c.unit_price),
            amount=to_money(Decimal(c.table_count) * Decimal(c.unit_price)),
        )
        for c in commitments
    ]
    if outlet_count:
        lines.append(
            LineItem(
                description="Electrical outlets",
                quantity=to_money(outlet_count),
                unit_price=to_money(outlet_unit_price),
                amount=to_money(outlet_revenue),
            )
        )
    if table_discount:
        lines.append(
            LineItem(
                description="Discount (tables)",
                quantity=to_money(table_discount),
                unit_price=to_money(-average_price),
                amount=to_money(-table_discount_value),
            )
        )
    if amount_discount:
        lines.append(
            LineItem(
                description="Discount",
                quantity=to_money(1),
                unit_price=to_money(-Decimal(amount_discount)),
                amount=to_money(-Decimal(amount_discount)),
            )
        )

    return InvoiceAmounts(
        table_amount=to_money(table_revenue),
        outlet_amount=to_money(outlet_revenue),
        gross_amount=to_money(gross),
        discount_amount=to_money(total_discount),
        total_amount=to_money(gross - total_discount),
        lines=tuple(lines),
    )


def amounts_from_totals(
    *,
    table_amount: Decimal,
    outlet_amount: Decimal,
    discount_amount: Decimal,
    lines: Sequence[LineItem] | None = None,
) -> InvoiceAmounts:
    """Builds invoice amounts from manually entered totals; gross and total are always derived."""
    if table_amount < 0 or outlet_amount < 0 or discount_amount < 0:
        raise ValueError("invoice amounts must be >= 0")
    gross = Decimal(table_amount) + Decimal(outlet_amount)
    if lines is None:
        summary = [
            ("Tables", table_amount, 1),
            ("Electrical outlets", outlet_amount, 1),
            ("Discount", discount_amount, -1),
        ]
        lines = [
            LineItem(
                description=description,
                quantity=to_money(1),
                unit_price=to_money(sign * Decimal(amount)),
                amount=to_money(sign * Decimal(amount)),
            )
            for description, amount, sign in summary
            if amount
        ]
    return InvoiceAmounts(
        table_amount=to_money(table_amount),
        outlet_amount=to_money(outlet_amount),
        gross_amount=to_money(gross),
        discount_amount=to_money(discount_amount),
        total_amount=to_money(gross - Decimal(discount_amount)),
        lines=tuple(lines),
    )


def parse_payment_status(value: str) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as exc:
        raise InvalidStatus(
            "invalid payment status",
            status=value,
            allowed=[s.value for s in PaymentStatus],
        ) from exc


def ensure_invoice_editable(*, invoice_id: int, status: PaymentStatus) -> None:
    if status == PaymentStatus.PAID:
        raise InvoicePaid("invoice is paid and can no longer be changed", invoice_id=invoice_id)
