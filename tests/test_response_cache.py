import pytest
from prometheus_client import REGISTRY

from invoicing.app.cache import ResponseCache, invalidate_views
from invoicing.app.services import dashboard


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, *args, **kwargs):
        raise ConnectionError("redis down")

    async def scan_iter(self, match=None):
        raise ConnectionError("redis down")
        yield  # pragma: no cover


@pytest.mark.anyio
async def test_set_get_and_invalidate(cache):
    await cache.set_json("invoices:list:all", [{"number": "B2C-01", "total": 1.5}])
    await cache.set_json("invoices:list:B2B", [])
    await cache.set_json("dashboard:summary", {"invoices": 1})

    assert await cache.get_json("invoices:list:all") == [{"number": "B2C-01", "total": 1.5}]
    await invalidate_views(cache, "invoices")
    assert await cache.get_json("invoices:list:all") is None
    assert await cache.get_json("invoices:list:B2B") is None
    assert await cache.get_json("dashboard:summary") == {"invoices": 1}


@pytest.mark.anyio
async def test_cache_failures_are_swallowed(caplog):
    cache = ResponseCache(BrokenRedis())
    before = REGISTRY.get_sample_value("cache_invalidation_failures_total")

    assert await cache.get_json("anything") is None
    await cache.set_json("anything", {"a": 1})
    await cache.invalidate("invoices")

    assert REGISTRY.get_sample_value("cache_invalidation_failures_total") == before + 1
    assert "cache invalidation failed" in caplog.text


@pytest.mark.anyio
async def test_invalidate_without_cache_is_a_no_op():
    await invalidate_views(None, "invoices", "dashboard")


@pytest.mark.anyio
async def test_dashboard_summary_is_cached(session, catalog, settings, cache):
    from invoicing.app.services import cash_drawer, invoice_service

    first = await invoice_service.create_invoice(
        session,
        {"items": [{"item_id": catalog.carpet, "quantity": 1}], "paid_amount": 18},
        settings=settings,
        cache=cache,
    )
    await invoice_service.create_invoice(
        session, {"items": [{"item_id": catalog.mat, "quantity": 1}]}, settings=settings, cache=cache
    )
    await invoice_service.cancel_invoice(session, first.id, cache=cache)
    await cash_drawer.adjust(session, "add", {100: 2}, cache=cache)

    data = await dashboard.summary(session, cache=cache)
    assert data == {
        "invoices": 1,
        "cancelled": 1,
        "unpaid_invoices": 1,
        "revenue": 56.0,
        "received": 0.0,
        "outstanding": 56.0,
        "cash_on_hand": 200,
    }
    assert await cache.get_json(dashboard.CACHE_KEY) == data

    await cash_drawer.adjust(session, "add", {100: 1}, cache=cache)
    assert (await dashboard.summary(session, cache=cache))["cash_on_hand"] == 300
