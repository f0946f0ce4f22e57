"""Invoice routes: CRUD, cancellation, payments, reprints and portal links."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings

from .cache import ResponseCache
from .db import session_dep
from .deps.collaborators import get_cache, get_renderer, settings_dep
from .pdf.render import InvoiceRenderer
from .schemas import InvoiceIn, PaymentIn, PortalLinkIn
from .services import invoice_service
from .services.invoice_service import PaymentResult, serialize_invoice
from .utils.responses import ok

router = APIRouter()


def _payload(body: InvoiceIn) -> dict:
    data = body.model_dump(exclude_unset=True)
    data["items"] = [line.model_dump() for line in body.items]
    if body.export_info is not None:
        data["export_info"] = body.export_info.model_dump()
    return data


def _allocation(result: PaymentResult) -> dict:
    return {
        "allocations": [
            {
                "invoice_id": a.invoice_id,
                "number": a.number,
                "applied": float(a.applied),
                "balance": float(a.balance),
            }
            for a in result.allocations
        ],
        "applied": float(result.applied),
        "unallocated": float(result.unallocated),
    }


@router.post("/api/invoices", status_code=201)
async def create_invoice(
    body: InvoiceIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
    settings: Settings = Depends(settings_dep),
):
    invoice = await invoice_service.create_invoice(
        session, _payload(body), settings=settings, cache=cache
    )
    return ok(serialize_invoice(invoice))


@router.get("/api/invoices")
async def list_invoices(
    customer_type: Optional[str] = None,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    """List invoices newest first; ``customer_type`` filters B2B or B2C."""

    data = await invoice_service.list_invoices(
        session, customer_type=customer_type, cache=cache
    )
    return ok(data)


@router.get("/api/invoices/{invoice_id}")
async def get_invoice(invoice_id: int, session: AsyncSession = Depends(session_dep)):
    invoice = await invoice_service.get_invoice(session, invoice_id)
    return ok(serialize_invoice(invoice))


@router.put("/api/invoices/{invoice_id}")
async def update_invoice(
    invoice_id: int,
    body: InvoiceIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
    settings: Settings = Depends(settings_dep),
):
    invoice = await invoice_service.update_invoice(
        session, invoice_id, _payload(body), settings=settings, cache=cache
    )
    return ok(serialize_invoice(invoice))


@router.delete("/api/invoices/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    return ok(await invoice_service.delete_invoice(session, invoice_id, cache=cache))


@router.post("/api/invoices/{invoice_id}/cancel")
async def cancel_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    invoice = await invoice_service.cancel_invoice(session, invoice_id, cache=cache)
    return ok(serialize_invoice(invoice))


@router.post("/api/invoices/{invoice_id}/reprint")
async def reprint_invoice(
    invoice_id: int,
    format: Literal["a4", "thermal"] = "a4",
    session: AsyncSession = Depends(session_dep),
    renderer: InvoiceRenderer = Depends(get_renderer),
):
    path = await invoice_service.reprint_invoice(
        session, invoice_id, format, renderer=renderer
    )
    return ok({"invoice_id": invoice_id, "path": path, "format": format})


@router.post("/api/invoices/{invoice_id}/payments")
async def record_invoice_payment(
    invoice_id: int,
    body: PaymentIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    result = await invoice_service.record_payment(
        session, invoice_id, body.amount, body.method, cache=cache
    )
    return ok(_allocation(result))


@router.post("/api/customers/{customer_id}/payments")
async def record_customer_payment(
    customer_id: int,
    body: PaymentIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    """Allocate a payment across the customer's open invoices, oldest first."""

    result = await invoice_service.record_customer_payment(
        session, customer_id, body.amount, body.method, cache=cache
    )
    return ok(_allocation(result))


@router.post("/api/invoices/{invoice_id}/portal-link")
async def create_portal_link(
    invoice_id: int,
    request: Request,
    body: PortalLinkIn | None = None,
    session: AsyncSession = Depends(session_dep),
    settings: Settings = Depends(settings_dep),
):
    base_url = (
        (body.base_url if body else None)
        or settings.public_base_url
        or str(request.base_url)
    )
    link = await invoice_service.create_portal_link(
        session, invoice_id, base_url=base_url, settings=settings
    )
    return ok(link)


@router.get("/api/public/invoices/{invoice_id}")
async def public_invoice(
    invoice_id: int,
    token: Optional[str] = None,
    session: AsyncSession = Depends(session_dep),
):
    return ok(await invoice_service.get_public_invoice(session, invoice_id, token))


@router.get("/api/public/invoices/{invoice_id}/download")
async def public_invoice_download(
    invoice_id: int,
    token: Optional[str] = None,
    format: Literal["a4", "thermal"] = "a4",
    session: AsyncSession = Depends(session_dep),
    renderer: InvoiceRenderer = Depends(get_renderer),
):
    path = await invoice_service.public_artifact(
        session, invoice_id, token, format, renderer=renderer
    )
    media_type = "application/pdf" if path.endswith(".pdf") else "text/html"
    return FileResponse(path, media_type=media_type)
