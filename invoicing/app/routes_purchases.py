"""Purchase bill routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import ResponseCache
from .db import session_dep
from .deps.collaborators import get_cache
from .schemas import PurchaseIn
from .services import purchase_service
from .utils.responses import ok

router = APIRouter(prefix="/api/purchases")


def _payload(body: PurchaseIn) -> dict:
    data = body.model_dump(exclude_unset=True)
    data["items"] = [line.model_dump() for line in body.items]
    return data


@router.post("", status_code=201)
async def create_purchase(
    body: PurchaseIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    purchase = await purchase_service.create_purchase(session, _payload(body), cache=cache)
    return ok(purchase_service.serialize_purchase(purchase))


@router.get("")
async def list_purchases(session: AsyncSession = Depends(session_dep)):
    purchases = await purchase_service.list_purchases(session)
    return ok([purchase_service.serialize_purchase(p) for p in purchases])


@router.put("/{purchase_id}")
async def update_purchase(
    purchase_id: int,
    body: PurchaseIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    purchase = await purchase_service.update_purchase(
        session, purchase_id, _payload(body), cache=cache
    )
    return ok(purchase_service.serialize_purchase(purchase))


@router.delete("/{purchase_id}")
async def delete_purchase(
    purchase_id: int,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    return ok(await purchase_service.delete_purchase(session, purchase_id, cache=cache))
