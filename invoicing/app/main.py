# main.py

"""FastAPI application for invoicing, GST returns and the cash drawer."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import from_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings, validate_settings

from .db import dispose_engine
from .errors import InvoicingError
from .middlewares import LoggingMiddleware, RequestIdMiddleware
from .obs import capture_exception, init_sentry
from .obs.logging import configure_logging
from .pdf.render import InvoiceRenderer
from .routes_cash_drawer import router as cash_drawer_router
from .routes_dashboard import router as dashboard_router
from .routes_gst_returns import router as gst_returns_router
from .routes_invoices import router as invoices_router
from .routes_metrics import router as metrics_router
from .routes_purchases import router as purchases_router
from .utils.responses import err, error_payload, ok

logger = logging.getLogger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    redis = getattr(app.state, "redis", None)
    if redis is not None:
        await redis.aclose()
    await dispose_engine()


def create_app() -> FastAPI:
    """Build the application with settings validated at boot."""

    settings = get_settings()
    validate_settings(settings)
    configure_logging(settings.log_level.upper())
    init_sentry(settings.error_dsn, env=os.getenv("ENV"))

    app = FastAPI(title="GST Invoicing", lifespan=lifespan)
    app.state.redis = from_url(settings.redis_url, decode_responses=True)
    app.state.renderer = InvoiceRenderer(
        settings.artifacts_dir,
        seller={
            "name": settings.seller_name,
            "gstin": settings.seller_gstin,
            "state": settings.seller_state,
        },
    )

    # Last added runs outermost: request ids exist before access logging.
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(InvoicingError)
    async def invoicing_error_handler(request: Request, exc: InvoicingError):
        logger.warning(
            "%s %s: %s",
            exc.code,
            request.url.path,
            exc.message,
            extra={"context": {"status": exc.status_code, "route": request.url.path}},
        )
        return JSONResponse(error_payload(exc), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            err("VALIDATION", "Invalid request", {"errors": jsonable_encoder(exc.errors())}),
            status_code=422,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(err(exc.status_code, exc.detail), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"context": {"route": request.url.path}})
        capture_exception(exc, route=request.url.path)
        return JSONResponse(err("INTERNAL", "Internal Server Error"), status_code=500)

    @app.get("/health")
    async def health() -> dict:
        return ok({"status": "ok"})

    app.include_router(invoices_router)
    app.include_router(cash_drawer_router)
    app.include_router(gst_returns_router)
    app.include_router(purchases_router)
    app.include_router(dashboard_router)
    app.include_router(metrics_router)
    return app


app = create_app()
