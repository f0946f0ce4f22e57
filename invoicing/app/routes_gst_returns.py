"""Routes for GST returns."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings

from .db import session_dep
from .deps.collaborators import settings_dep
from .services.gst_returns import generate_returns
from .utils.responses import ok

router = APIRouter()


@router.get("/api/gst/returns")
async def gst_returns(
    start: date = Query(alias="from"),
    end: date = Query(alias="to"),
    session: AsyncSession = Depends(session_dep),
    settings: Settings = Depends(settings_dep),
):
    """Return GSTR-1, GSTR-3B, document and HSN summaries for ``from``..``to``.

    Both dates are inclusive; the whole of ``to`` is covered.
    """

    data = await generate_returns(session, start, end, settings=settings)
    return ok(jsonable_encoder(data))
