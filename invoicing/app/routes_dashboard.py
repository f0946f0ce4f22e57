"""Dashboard summary route."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import ResponseCache
from .db import session_dep
from .deps.collaborators import get_cache
from .services import dashboard
from .utils.responses import ok

router = APIRouter()


@router.get("/api/dashboard")
async def dashboard_summary(
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    return ok(await dashboard.summary(session, cache=cache))
