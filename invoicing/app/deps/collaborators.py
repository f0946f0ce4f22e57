"""Dependency helpers resolving per-app collaborators from ``app.state``."""

from __future__ import annotations

from fastapi import Request

from config import Settings, get_settings

from ..cache import ResponseCache
from ..pdf.render import InvoiceRenderer


def get_cache(request: Request) -> ResponseCache | None:
    """Return the response cache, or ``None`` when no Redis client is wired."""

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return None
    return ResponseCache(redis)


def get_renderer(request: Request) -> InvoiceRenderer:
    renderer = getattr(request.app.state, "renderer", None)
    if renderer is None:
        settings = get_settings()
        renderer = InvoiceRenderer(
            settings.artifacts_dir,
            seller={
                "name": settings.seller_name,
                "gstin": settings.seller_gstin,
                "state": settings.seller_state,
            },
        )
        request.app.state.renderer = renderer
    return renderer


def settings_dep() -> Settings:
    return get_settings()
