from decimal import Decimal
from types import SimpleNamespace

import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from invoicing.app.db import configure_sqlite, session_dep
from invoicing.app.main import app
from invoicing.app.models import Base, Customer, Item, Supplier
from invoicing.app.pdf import render
from invoicing.app.pdf.render import InvoiceRenderer


def _seed(url: str) -> SimpleNamespace:
    engine = create_engine(url)
    Base.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as db:
        carpet = Item(name="Carpet", hsn_code="5703", rate=Decimal("100"), tax_slab=18, quantity_in_stock=10)
        mat = Item(name="Door Mat", hsn_code="5705", rate=Decimal("50"), tax_slab=12, quantity_in_stock=20)
        b2b = Customer(
            customer_type="B2B", firm_name="Chennai Traders", gstin="33AAACC1234F1Z5", state="33-Tamil Nadu"
        )
        remote = Customer(customer_type="B2C", name="Ravi", state="29-Karnataka")
        supplier = Supplier(name="Panipat Looms")
        db.add_all([carpet, mat, b2b, remote, supplier])
        db.commit()
        ids = SimpleNamespace(
            carpet=carpet.id, mat=mat.id, b2b=b2b.id, remote=remote.id, supplier=supplier.id
        )
    engine.dispose()
    return ids


@pytest.fixture
def seeded(tmp_path, monkeypatch):
    path = tmp_path / "api.db"
    ids = _seed(f"sqlite:///{path}")

    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    configure_sqlite(engine)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def override_session():
        async with factory() as session:
            yield session

    monkeypatch.setattr(render, "_html_to_pdf", lambda html: None)
    app.dependency_overrides[session_dep] = override_session
    app.state.redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    app.state.renderer = InvoiceRenderer(tmp_path / "artifacts", seller={"name": "Test Seller"})
    yield ids
    app.dependency_overrides.clear()


@pytest.fixture
def client(seeded):
    with TestClient(app) as client:
        yield client
