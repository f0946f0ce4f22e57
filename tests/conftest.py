from decimal import Decimal
from types import SimpleNamespace

import fakeredis.aioredis
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from config import Settings
from invoicing.app.cache import ResponseCache
from invoicing.app.db import configure_sqlite, init_models
from invoicing.app.models import Customer, Item, Supplier

SELLER_STATE = "33-Tamil Nadu"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        seller_name="Test Seller",
        seller_gstin="33BVRPS2849Q2ZG",
        seller_state=SELLER_STATE,
        b2cl_threshold=250000,
        invoice_number_retries=3,
        portal_token_ttl_days=30,
        artifacts_dir=str(tmp_path / "artifacts"),
    )


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    configure_sqlite(engine)
    await init_models(engine)
    factory = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    yield factory
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(session):
    """Seed two items, three customers and a supplier; returns their ids."""

    carpet = Item(
        name="Carpet",
        hsn_code="5703",
        rate=Decimal("100"),
        tax_slab=Decimal("18"),
        quantity_in_stock=10,
    )
    mat = Item(
        name="Door Mat",
        hsn_code="5705",
        rate=Decimal("50"),
        tax_slab=Decimal("12"),
        quantity_in_stock=20,
    )
    local_b2b = Customer(
        customer_type="B2B",
        firm_name="Chennai Traders",
        gstin="33AAACC1234F1Z5",
        state=SELLER_STATE,
    )
    remote_b2b = Customer(
        customer_type="B2B",
        firm_name="Bengaluru Interiors",
        gstin="29AABCB5678K1Z3",
        state="29-Karnataka",
    )
    remote_b2c = Customer(customer_type="B2C", name="Ravi", state="29-Karnataka")
    supplier = Supplier(name="Panipat Looms", state="06-Haryana")
    session.add_all([carpet, mat, local_b2b, remote_b2b, remote_b2c, supplier])
    await session.commit()
    # Ids only: a rollback later in a test expires the ORM objects.
    return SimpleNamespace(
        carpet=carpet.id,
        mat=mat.id,
        local_b2b=local_b2b.id,
        remote_b2b=remote_b2b.id,
        remote_b2c=remote_b2c.id,
        supplier=supplier.id,
    )


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(fakeredis.aioredis.FakeRedis(decode_responses=True))


@pytest.fixture
def stock_of(session):
    """Read stock straight from the table, bypassing the identity map."""

    async def _read(item_id: int) -> int:
        return await session.scalar(
            select(Item.quantity_in_stock).where(Item.id == item_id)
        )

    return _read
