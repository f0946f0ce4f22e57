# routes_metrics.py

"""Prometheus metrics and /metrics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# Counters
invoices_created_total = Counter("invoices_created_total", "Total invoices created")
invoices_created_total.inc(0)

invoices_deleted_total = Counter(
    "invoices_deleted_total", "Total invoices deleted or cancelled", ["action"]
)

invoice_number_conflicts_total = Counter(
    "invoice_number_conflicts_total",
    "Invoice number collisions that triggered a renumbering retry",
)
invoice_number_conflicts_total.inc(0)

cash_drawer_transactions_total = Counter(
    "cash_drawer_transactions_total", "Cash drawer transactions recorded", ["type"]
)

cache_invalidation_failures_total = Counter(
    "cache_invalidation_failures_total", "Response cache invalidations that failed"
)
cache_invalidation_failures_total.inc(0)

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
