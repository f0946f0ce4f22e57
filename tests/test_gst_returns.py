import logging
from datetime import date, datetime
from decimal import Decimal

import pytest

from invoicing.app.errors import ValidationError
from invoicing.app.models import Invoice, InvoiceLine
from invoicing.app.services import invoice_service
from invoicing.app.services.gst_returns import generate_returns, resolve_tax_view

APRIL = (date(2024, 4, 1), date(2024, 4, 30))


async def _create(session, settings, items, day, customer=None, **extra):
    payload = {"customer_id": customer, "items": items, "invoice_date": day}
    payload.update(extra)
    invoice = await invoice_service.create_invoice(session, payload, settings=settings)
    return invoice.id


def _legacy_invoice(catalog, number, day, hsn="5703", slab="18"):
    """An old invoice whose lines carry no stored tax breakup."""

    return Invoice(
        number=number,
        invoice_date=day,
        subtotal=Decimal("200"),
        cgst=Decimal("18"),
        sgst=Decimal("18"),
        total_tax=Decimal("36"),
        total_amount=Decimal("236"),
        grand_total=Decimal("236"),
        balance=Decimal("236"),
        lines=[
            InvoiceLine(
                position=0,
                item_id=catalog.carpet,
                name="Carpet",
                hsn_code=hsn,
                rate=Decimal("100"),
                tax_slab=Decimal(slab),
                quantity=2,
            )
        ],
    )


@pytest.fixture
def small_b2cl(settings):
    return settings.model_copy(update={"b2cl_threshold": 1000})


@pytest.fixture
async def period(session, catalog, small_b2cl):
    carpet, mat = catalog.carpet, catalog.mat
    ids = {}
    ids["b2b"] = await _create(
        session, small_b2cl, [{"item_id": carpet, "quantity": 2}], datetime(2024, 4, 2), catalog.local_b2b
    )
    ids["b2cl"] = await _create(
        session, small_b2cl, [{"item_id": carpet, "quantity": 10}], datetime(2024, 4, 3), catalog.remote_b2c
    )
    ids["b2cs_intra"] = await _create(
        session, small_b2cl, [{"item_id": mat, "quantity": 2}], datetime(2024, 4, 4)
    )
    ids["b2cs_inter"] = await _create(
        session, small_b2cl, [{"item_id": mat, "quantity": 1}], datetime(2024, 4, 5), catalog.remote_b2c
    )
    ids["export"] = await _create(
        session,
        small_b2cl,
        [{"item_id": carpet, "quantity": 1}],
        datetime(2024, 4, 30, 23, 30),
        export_info={
            "is_export": True,
            "with_tax": False,
            "shipping_bill_no": "SB-1",
            "shipping_bill_date": "2024-04-29",
            "port_code": "INMAA1",
        },
    )
    ids["cancelled"] = await _create(
        session, small_b2cl, [{"item_id": mat, "quantity": 1}], datetime(2024, 4, 6)
    )
    await invoice_service.cancel_invoice(session, ids["cancelled"])
    ids["may"] = await _create(
        session, small_b2cl, [{"item_id": mat, "quantity": 1}], datetime(2024, 5, 1)
    )
    legacy = _legacy_invoice(catalog, "B2C-90", datetime(2024, 4, 15))
    session.add(legacy)
    await session.commit()
    ids["legacy"] = legacy.id
    return ids


@pytest.mark.anyio
async def test_buckets_partition_the_period(session, period, small_b2cl):
    data = await generate_returns(session, *APRIL, settings=small_b2cl)

    assert data["summary"] == {
        "total_invoices": 6,
        "totals": {
            "taxable_value": Decimal("1650.00"),
            "cgst": Decimal("51.00"),
            "sgst": Decimal("51.00"),
            "igst": Decimal("186.00"),
            "total_tax": Decimal("288.00"),
        },
    }
    assert data["reconciliation"] == {
        "b2b": Decimal("200.00"),
        "b2cl": Decimal("1000.00"),
        "b2cs": Decimal("350.00"),
        "exp": Decimal("100.00"),
        "taxable_value": Decimal("1650.00"),
    }
    assert data["reconciliation"]["taxable_value"] == data["summary"]["totals"]["taxable_value"]


@pytest.mark.anyio
async def test_gstr1_sections(session, period, small_b2cl):
    gstr1 = (await generate_returns(session, *APRIL, settings=small_b2cl))["gstr1"]

    assert gstr1["gstin"] == "33BVRPS2849Q2ZG"
    assert gstr1["ret_period"] == "042024"
    assert gstr1["gt"] == Decimal("1938.00")

    [b2b] = gstr1["b2b"]
    assert b2b["ctin"] == "33AAACC1234F1Z5"
    [entry] = b2b["inv"]
    assert entry["inum"] == "B2B-01"
    assert entry["pos"] == "33"
    assert entry["itms"][0]["itm_det"] == {
        "rt": Decimal("18"),
        "txval": Decimal("200.00"),
        "iamt": Decimal("0.00"),
        "camt": Decimal("18.00"),
        "samt": Decimal("18.00"),
    }

    [b2cl] = gstr1["b2cl"]
    assert b2cl["pos"] == "29"
    assert b2cl["inv"][0]["itms"][0]["itm_det"]["iamt"] == Decimal("180.00")

    rows = [(r["sply_ty"], r["pos"], r["rt"], r["txval"]) for r in gstr1["b2cs"]]
    assert rows == [
        ("INTER", "29", Decimal("12"), Decimal("50.00")),
        ("INTRA", "33", Decimal("12"), Decimal("100.00")),
        ("INTRA", "33", Decimal("18"), Decimal("200.00")),
    ]

    [exp] = gstr1["exp"]
    assert exp["exp_typ"] == "WOPAY"
    assert exp["inv"][0]["sbnum"] == "SB-1"
    assert "pos" not in exp["inv"][0]


@pytest.mark.anyio
async def test_side_reports(session, period, small_b2cl):
    data = await generate_returns(session, *APRIL, settings=small_b2cl)

    assert data["gstr3b"]["outward_taxable_supplies"] == Decimal("1550.00")
    assert data["gstr3b"]["zero_rated_supplies"] == Decimal("100.00")
    assert data["gstr3b"]["igst"] == Decimal("186.00")

    docs = data["doc_summary"]
    assert docs["total_count"] == 6
    assert docs["cancelled_count"] == 1
    assert docs["first_number"] == "B2B-01"
    assert docs["last_number"] == "B2C-90"

    hsn = {row["hsn"]: row for row in data["hsn_summary"]["rows"]}
    assert data["hsn_summary"]["count"] == 2
    assert hsn["5703"]["quantity"] == 15
    assert hsn["5703"]["taxable_value"] == Decimal("1500.00")
    assert hsn["5705"]["rate"] == Decimal("12")
    assert hsn["5705"]["igst"] == Decimal("6.00")


@pytest.mark.anyio
async def test_stored_and_derived_views(session, period, small_b2cl):
    stored = await invoice_service.get_invoice(session, period["b2b"])
    legacy = await invoice_service.get_invoice(session, period["legacy"])

    assert resolve_tax_view(stored, small_b2cl.seller_state).source == "stored"
    view = resolve_tax_view(legacy, small_b2cl.seller_state)
    assert view.source == "derived"
    assert view.taxable_value == Decimal("200")
    assert view.cgst == view.sgst == Decimal("18")


@pytest.mark.anyio
async def test_hsn_rate_drift_reports_max_rate(session, catalog, settings, caplog):
    session.add(_legacy_invoice(catalog, "B2C-01", datetime(2024, 4, 1), hsn="5703", slab="12"))
    session.add(_legacy_invoice(catalog, "B2C-02", datetime(2024, 4, 2), hsn="5703", slab="18"))
    await session.commit()

    caplog.set_level(logging.WARNING, logger="integrity")
    data = await generate_returns(session, *APRIL, settings=settings)
    [row] = data["hsn_summary"]["rows"]
    assert row["rate"] == Decimal("18")
    assert row["quantity"] == 4
    assert any(r.getMessage() == "tax rate drift within HSN code" for r in caplog.records)


@pytest.mark.anyio
async def test_empty_period_and_bad_range(session, catalog, settings):
    data = await generate_returns(session, date(2023, 1, 1), date(2023, 1, 31), settings=settings)
    assert data["summary"]["total_invoices"] == 0
    assert data["reconciliation"]["taxable_value"] == Decimal("0.00")
    assert data["doc_summary"]["first_number"] is None

    with pytest.raises(ValidationError):
        await generate_returns(session, date(2024, 5, 1), date(2024, 4, 1), settings=settings)
