"""Error taxonomy shared by the invoicing services.

Services raise these exceptions; :mod:`invoicing.app.main` renders them into
the standard error envelope with the mapped status code. ``IntegrityWarning``
is only ever logged, never raised.
"""

from __future__ import annotations

import logging
from typing import Any

integrity_logger = logging.getLogger("integrity")


class InvoicingError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 400
    code = "INVOICING_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(InvoicingError):
    """Bad or missing input: the request was rejected and nothing happened."""

    status_code = 422
    code = "VALIDATION"


class NotFoundError(InvoicingError):
    """A referenced invoice, customer, item or supplier does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(InvoicingError):
    """The request collides with current state (numbering, drawer funds)."""

    status_code = 409
    code = "CONFLICT"


class IntegrityWarning(UserWarning):
    """Data looks unusual (negative stock, HSN rate drift) but is accepted."""


def integrity_warning(message: str, **context: Any) -> None:
    """Log ``message`` on the ``integrity`` logger with ``context`` attached."""

    integrity_logger.warning(
        message,
        extra={"category": IntegrityWarning.__name__, "context": context},
    )


__all__ = [
    "ConflictError",
    "IntegrityWarning",
    "InvoicingError",
    "NotFoundError",
    "ValidationError",
    "integrity_warning",
]
