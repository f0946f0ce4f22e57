import logging
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from invoicing.app.db import configure_sqlite
from invoicing.app.errors import ConflictError, NotFoundError, ValidationError
from invoicing.app.models import Base, CashTransaction
from invoicing.app.services import cash_drawer, invoice_service
from invoicing.app.services.change_maker import total_of

FLOAT = {500: 2, 100: 5, 20: 5, 10: 5, 2: 5}


async def _assert_ledger_consistent(session):
    drawer = await cash_drawer.get_drawer(session)
    assert drawer.total_cash == total_of(drawer.denominations)
    txns = list(await session.scalars(select(CashTransaction).order_by(CashTransaction.id)))
    assert sum(t.signed_amount for t in txns) == drawer.total_cash
    for txn in txns:
        assert txn.before_total == total_of(txn.before_denoms)
        assert txn.after_total == total_of(txn.after_denoms)
        assert txn.after_total - txn.before_total == txn.signed_amount


async def _guest_invoice(session, settings, catalog):
    invoice = await invoice_service.create_invoice(
        session, {"items": [{"item_id": catalog.carpet, "quantity": 1}]}, settings=settings
    )
    return invoice.id


@pytest.mark.anyio
async def test_empty_drawer_is_created_on_first_access(session):
    drawer = await cash_drawer.get_drawer(session)
    assert drawer.id == cash_drawer.DRAWER_ID
    assert drawer.total_cash == 0
    assert set(drawer.denominations) == {"500", "200", "100", "50", "20", "10", "5", "2", "1"}


@pytest.mark.anyio
async def test_add_float(session, cache):
    txn = await cash_drawer.adjust(session, "add", FLOAT, "opening float", cache=cache)
    assert txn.type == "adjust-add"
    assert txn.direction == "credit"
    assert txn.amount == 1660
    assert txn.before_total == 0 and txn.after_total == 1660
    drawer = await cash_drawer.get_drawer(session)
    assert drawer.denominations["500"] == 2
    await _assert_ledger_consistent(session)


@pytest.mark.anyio
async def test_cash_sale_returns_change_and_settles_invoice(session, catalog, settings):
    await cash_drawer.adjust(session, "add", FLOAT)
    invoice_id = await _guest_invoice(session, settings, catalog)

    txn = await cash_drawer.record_sale(session, invoice_id, 118, {"200": 1})
    assert txn.type == "sale"
    assert txn.amount == 118
    assert {k: v for k, v in txn.change_given.items() if v} == {"20": 4, "2": 1}
    assert txn.after_total == 1660 + 118

    drawer = await cash_drawer.get_drawer(session)
    assert drawer.denominations["200"] == 1
    assert drawer.denominations["20"] == 1
    assert drawer.denominations["2"] == 4

    invoice = await invoice_service.get_invoice(session, invoice_id)
    assert invoice.paid_amount == Decimal("118.00")
    assert invoice.balance == 0
    assert invoice.payment_method == "Cash"
    await _assert_ledger_consistent(session)


@pytest.mark.anyio
async def test_exact_tender_needs_no_change(session):
    txn = await cash_drawer.record_sale(session, None, 120, {100: 1, 20: 1})
    assert not any(txn.change_given.values())
    assert txn.after_total == 120


@pytest.mark.anyio
async def test_sale_without_exact_change_is_rejected(session):
    await cash_drawer.adjust(session, "add", {500: 1})
    with pytest.raises(ConflictError):
        await cash_drawer.record_sale(session, None, 118, {500: 1})
    drawer = await cash_drawer.get_drawer(session)
    assert drawer.total_cash == 500
    assert len(await cash_drawer.list_transactions(session)) == 1


@pytest.mark.anyio
async def test_sale_validation(session, catalog, settings):
    with pytest.raises(ValidationError):
        await cash_drawer.record_sale(session, None, 500, {200: 1})
    with pytest.raises(ValidationError):
        await cash_drawer.record_sale(session, None, 3, {3: 1})
    with pytest.raises(ValidationError):
        await cash_drawer.record_sale(session, None, 10, {})
    with pytest.raises(ValidationError):
        await cash_drawer.record_sale(session, None, 0, {10: 1})
    with pytest.raises(NotFoundError):
        await cash_drawer.record_sale(session, 999, 10, {10: 1})

    invoice_id = await _guest_invoice(session, settings, catalog)
    await invoice_service.cancel_invoice(session, invoice_id)
    with pytest.raises(ConflictError):
        await cash_drawer.record_sale(session, invoice_id, 118, {100: 1, 20: 1})


@pytest.mark.anyio
async def test_removal_beyond_cash_on_hand_fails(session):
    await cash_drawer.adjust(session, "add", {100: 2})
    with pytest.raises(ConflictError):
        await cash_drawer.adjust(session, "remove", {500: 1})
    assert (await cash_drawer.get_drawer(session)).total_cash == 200


@pytest.mark.anyio
async def test_unfundable_removal_is_rejected(session):
    await cash_drawer.adjust(session, "add", {500: 1, 100: 1})

    with pytest.raises(ConflictError) as excinfo:
        await cash_drawer.adjust(session, "remove", {100: 3}, "shortage")
    assert excinfo.value.details["shortfall"] == 200

    drawer = await cash_drawer.get_drawer(session)
    assert drawer.total_cash == 600
    assert drawer.denominations["100"] == 1
    assert len(await cash_drawer.list_transactions(session)) == 1
    await _assert_ledger_consistent(session)


@pytest.mark.anyio
async def test_clamped_removal_is_made_up_from_other_notes(session, caplog):
    await cash_drawer.adjust(session, "add", {100: 5})
    caplog.set_level(logging.WARNING, logger="integrity")

    txn = await cash_drawer.adjust(session, "remove", {500: 1}, "bank deposit")
    assert txn.direction == "debit"
    assert txn.amount == 500
    assert txn.denominations["100"] == 5
    assert txn.denominations["500"] == 0
    assert (await cash_drawer.get_drawer(session)).total_cash == 0
    assert any(r.getMessage() == "denomination removal clamped at zero" for r in caplog.records)
    await _assert_ledger_consistent(session)


@pytest.mark.anyio
async def test_partly_clamped_removal_takes_the_full_amount(session):
    await cash_drawer.adjust(session, "add", {100: 1, 50: 4})

    txn = await cash_drawer.adjust(session, "remove", {100: 2})
    assert txn.amount == 200
    assert txn.denominations["100"] == 1
    assert txn.denominations["50"] == 2
    drawer = await cash_drawer.get_drawer(session)
    assert drawer.total_cash == 100
    assert drawer.denominations["50"] == 2
    await _assert_ledger_consistent(session)


@pytest.mark.anyio
async def test_paise_amounts_are_invalid_not_a_drawer_conflict(session, catalog, settings):
    invoice = await invoice_service.create_invoice(
        session,
        {"items": [{"item_id": catalog.carpet, "quantity": 1, "rate": "99.99"}]},
        settings=settings,
    )
    invoice_id = invoice.id
    assert invoice.grand_total == Decimal("117.99")

    with pytest.raises(ValidationError) as excinfo:
        await cash_drawer.record_sale(session, invoice_id, "117.99", {100: 1, 20: 1})
    assert "whole rupees" in excinfo.value.message
    assert await cash_drawer.list_transactions(session) == []
    assert (await invoice_service.get_invoice(session, invoice_id)).paid_amount == 0

    with pytest.raises(ValidationError):
        cash_drawer.propose_change("2.01", {}, {2: 1, 1: 1})


@pytest.mark.anyio
async def test_invalid_adjustments(session):
    with pytest.raises(ValidationError):
        await cash_drawer.adjust(session, "steal", {100: 1})
    with pytest.raises(ValidationError):
        await cash_drawer.adjust(session, "add", {100: -1})


def test_propose_change_uses_tendered_cash():
    assert cash_drawer.propose_change(30, {"20": 1}, {"10": 1}) == {20: 1, 10: 1}
    assert cash_drawer.propose_change(0, {}) == {}
    assert cash_drawer.propose_change(7, {"5": 1}) is None


@pytest.mark.anyio
async def test_concurrent_drawer_write_is_a_conflict(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'drawer.db'}")
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with factory() as first, factory() as second:
            stale = await cash_drawer.get_drawer(second)
            await second.commit()

            await cash_drawer.adjust(first, "add", {100: 1})

            stale.total_cash = 999
            with pytest.raises(ConflictError):
                await cash_drawer._commit(second)
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_missing_drawer_row_is_a_conflict(session, monkeypatch):
    async def vanished(*args, **kwargs):
        return None

    monkeypatch.setattr(session, "get", vanished)
    with pytest.raises(ConflictError):
        await cash_drawer.get_drawer(session)
