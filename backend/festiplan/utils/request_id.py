from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a random request id."""
    return uuid.uuid4().hex


def resolve_request_id(incoming: str | None) -> str:
    """Reuse a caller supplied id when it is usable, otherwise generate one."""
    if incoming:
        candidate = incoming.strip()
        if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
            return candidate
    return generate_request_id()


def set_request_id(request_id: str | None) -> Token[str | None]:
    """Store request id in context (None to clear). Returns a token for `reset_request_id`."""
    return _request_id_ctx.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _request_id_ctx.reset(token)


def get_request_id() -> Optional[str]:
    """Return current request id if set."""
    return _request_id_ctx.get()
