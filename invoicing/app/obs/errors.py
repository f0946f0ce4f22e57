"""Sentry wiring for unhandled failures."""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk


logger = logging.getLogger("obs")


def init_sentry(
    dsn: Optional[str] = None,
    env: Optional[str] = None,
    release: Optional[str] = None,
) -> None:
    """Initialize Sentry when a DSN is configured.

    Invoices carry customer names and GSTINs, so default PII stays off.
    """
    if not dsn:
        logger.info("ERROR_DSN not set; error sink disabled")
        return
    sentry_sdk.init(dsn=dsn, environment=env, release=release, send_default_pii=False)


def capture_exception(exc: Exception, **tags: object) -> None:
    """Send ``exc`` to Sentry tagged with the request id, else log it."""
    from ..middlewares.request_id import current_request_id

    if not sentry_sdk.get_client().is_active():
        logger.error("unhandled exception", exc_info=exc, extra={"context": tags})
        return
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("request_id", current_request_id())
        for key, value in tags.items():
            scope.set_tag(key, value)
        sentry_sdk.capture_exception(exc)
