"""Response envelopes: ``{"ok": true, "data": ...}`` or an ``error`` block."""

from typing import Any, Dict

from fastapi.encoders import jsonable_encoder

from ..errors import InvoicingError


def ok(data: Any) -> Dict[str, Any]:
    return {"ok": True, "data": data}


def err(
    code: int | str,
    message: str,
    details: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return an error envelope stamped with the current request id."""
    from ..middlewares.request_id import current_request_id

    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"ok": False, "request_id": current_request_id(), "error": error}


def error_payload(exc: InvoicingError) -> Dict[str, Any]:
    """Envelope for a service error; Decimal and date details are encoded."""
    return err(exc.code, exc.message, jsonable_encoder(exc.details))
