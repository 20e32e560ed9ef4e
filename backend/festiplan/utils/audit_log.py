from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "festival.current_set",
    "tariff_zone.created",
    "tariff_zone.updated",
    "tariff_zone.deleted",
    "plan_zone.created",
    "plan_zone.updated",
    "plan_zone.deleted",
    "reservation.created",
    "reservation.updated",
    "reservation.deleted",
    "reservation.zones_committed",
    "reservation.contact_logged",
    "game.added",
    "game.removed",
    "game.placed",
    "game.unplaced",
    "invoice.generated",
    "invoice.refreshed",
    "invoice.updated",
    "invoice.deleted",
    "invoice.status_changed",
]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _to_json_value(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "value"):
        return str(value.value)
    if isinstance(value, Decimal):
        return str(value)
    return value


def emit_audit_log(
    *,
    action: AuditAction,
    festival_id: Optional[int] = None,
    reservation_id: Optional[int] = None,
    zone_id: Optional[int] = None,
    game_instance_id: Optional[int] = None,
    invoice_id: Optional[int] = None,
    status_from: Optional[Any] = None,
    status_to: Optional[Any] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "festival_id": festival_id,
        "reservation_id": reservation_id,
        "zone_id": zone_id,
        "game_instance_id": game_instance_id,
        "invoice_id": invoice_id,
        "status_from": _to_json_value(status_from),
        "status_to": _to_json_value(status_to),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update({k: _to_json_value(v) for k, v in extra.items()})

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("failed to emit audit log") from exc
