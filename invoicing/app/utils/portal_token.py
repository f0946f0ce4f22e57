"""Opaque tokens for time-boxed public invoice links."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from ..errors import ConflictError, ValidationError
from ..models import utcnow

TOKEN_BYTES = 16


def issue_token(ttl_days: int, now: datetime | None = None) -> tuple[str, datetime]:
    """Return a fresh 32 hex character token and its expiry."""

    now = now or utcnow()
    return secrets.token_hex(TOKEN_BYTES), now + timedelta(days=ttl_days)


def check_token(
    expected: str | None,
    expires: datetime | None,
    supplied: str | None,
    now: datetime | None = None,
) -> None:
    """Raise unless ``supplied`` matches ``expected`` and has not expired."""

    if not expected or not supplied or not secrets.compare_digest(expected, supplied):
        raise ValidationError("Invalid portal token")
    now = now or utcnow()
    if expires is not None and expires < now:
        raise ConflictError(
            "Portal link expired", details={"expired_at": expires.isoformat()}
        )
