from datetime import date, datetime, timezone


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Naive values are taken as UTC already; aware values are converted."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def invoice_number(now: datetime | None = None, *, reservation_id: int | None = None) -> str:
    """
    Return an invoice number like FAC-20250412-1744459200123-42 (date, epoch milliseconds, reservation id).

    A reservation has at most one invoice, so the reservation suffix keeps numbers unique
    when two reservations are invoiced within the same millisecond.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    millis = int(now.timestamp() * 1000)
    number = f"FAC-{now:%Y%m%d}-{millis}"
    if reservation_id is not None:
        number = f"{number}-{reservation_id}"
    return number
