"""Database models for the invoicing service.

These models describe the catalog, buyers, invoices, purchases and the cash
drawer. They are kept isolated from any application wiring so that they can be
used in tests or migrations independently."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp used for business dates."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class CustomerType(str, enum.Enum):
    """Buyer classification; also the invoice number prefix."""

    B2B = "B2B"
    B2C = "B2C"


class InvoiceStatus(str, enum.Enum):
    """Stored lifecycle state of an invoice."""

    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """Payment state derived from paid amount and grand total."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Item(Base):
    """Catalog entry. Stock is changed only through the stock ledger."""

    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    hsn_code = Column(String, nullable=False)
    rate = Column(Numeric(12, 2), nullable=False)
    price_type = Column(String, nullable=False, default="Exclusive")
    tax_slab = Column(Numeric(5, 2), nullable=False, default=0)
    units = Column(String, nullable=False, default="per piece")
    quantity_in_stock = Column(Integer, nullable=False, default=0, server_default="0")


class Customer(Base):
    """Buyer record; read-only for invoicing."""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    customer_type = Column(String, nullable=False, default=CustomerType.B2C.value)
    firm_name = Column(String, nullable=True)
    name = Column(String, nullable=True)
    gstin = Column(String, nullable=True)
    state = Column(String, nullable=False)
    contact = Column(String, nullable=True)

    @property
    def display_name(self) -> str:
        return self.firm_name or self.name or f"Customer {self.id}"

    @property
    def classification(self) -> CustomerType:
        """A registered buyer is always B2B for GST purposes."""

        if self.gstin:
            return CustomerType.B2B
        return CustomerType(self.customer_type or CustomerType.B2C.value)


class Supplier(Base):
    """Vendor that purchase bills are received from."""

    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    gstin = Column(String, nullable=True)
    state = Column(String, nullable=True)


class Invoice(Base):
    """Sales invoice with snapshotted lines and computed totals."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    number = Column(String, unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    guest_name = Column(String, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    cgst = Column(Numeric(12, 2), nullable=False, default=0)
    sgst = Column(Numeric(12, 2), nullable=False, default=0)
    igst = Column(Numeric(12, 2), nullable=False, default=0)
    total_tax = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_charges = Column(Numeric(12, 2), nullable=False, default=0)
    grand_total = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String, nullable=True)
    billing_type = Column(String, nullable=True)
    export_info = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default=InvoiceStatus.ACTIVE.value)
    pdf_path = Column(String, nullable=True)
    portal_token = Column(String, nullable=True)
    portal_token_expires = Column(DateTime, nullable=True)
    invoice_date = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer = relationship("Customer", lazy="selectin")
    lines = relationship(
        "InvoiceLine",
        lazy="selectin",
        order_by="InvoiceLine.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == InvoiceStatus.CANCELLED.value

    @property
    def payment_status(self) -> PaymentStatus:
        if self.is_cancelled:
            return PaymentStatus.CANCELLED
        paid = Decimal(self.paid_amount or 0)
        if paid <= 0:
            return PaymentStatus.PENDING
        if paid < Decimal(self.grand_total or 0):
            return PaymentStatus.PARTIAL
        return PaymentStatus.PAID


class InvoiceLine(Base):
    """Line snapshot. The tax breakup columns are null on legacy rows."""

    __tablename__ = "invoice_lines"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    position = Column(Integer, nullable=False, default=0)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=True)
    name = Column(String, nullable=False, default="")
    hsn_code = Column(String, nullable=True)
    units = Column(String, nullable=True)
    rate = Column(Numeric(12, 2), nullable=False)
    price_type = Column(String, nullable=False, default="Exclusive")
    tax_slab = Column(Numeric(5, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_type = Column(String, nullable=False, default="flat")
    taxable_value = Column(Numeric(14, 4), nullable=True)
    cgst = Column(Numeric(14, 4), nullable=True)
    sgst = Column(Numeric(14, 4), nullable=True)
    igst = Column(Numeric(14, 4), nullable=True)

    @property
    def has_breakup(self) -> bool:
        return None not in (self.taxable_value, self.cgst, self.sgst, self.igst)


class InvoiceCounter(Base):
    """Last issued sequence per invoice number prefix."""

    __tablename__ = "invoice_counters"

    series = Column(String, primary_key=True)
    current = Column(Integer, nullable=False, default=0)


class Purchase(Base):
    """Purchase bill received from a supplier."""

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    purchase_date = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)

    supplier = relationship("Supplier", lazy="selectin")
    lines = relationship(
        "PurchaseLine",
        lazy="selectin",
        order_by="PurchaseLine.id",
        cascade="all, delete-orphan",
    )


class PurchaseLine(Base):
    """Line items belonging to a purchase bill."""

    __tablename__ = "purchase_lines"

    id = Column(Integer, primary_key=True)
    purchase_id = Column(
        Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False
    )
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    purchase_price = Column(Numeric(12, 2), nullable=False)


class CashDrawer(Base):
    """Singleton drawer holding counts per denomination.

    ``version`` guards concurrent writers: a stale update raises
    :class:`sqlalchemy.orm.exc.StaleDataError`.
    """

    __tablename__ = "cash_drawer"

    id = Column(Integer, primary_key=True, default=1)
    denominations = Column(JSON, nullable=False, default=dict)
    total_cash = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}


class CashTransaction(Base):
    """Append-only log of drawer movements with before/after snapshots."""

    __tablename__ = "cash_transactions"

    id = Column(Integer, primary_key=True)
    drawer_id = Column(Integer, ForeignKey("cash_drawer.id"), nullable=False)
    type = Column(String, nullable=False)
    direction = Column(String, nullable=False)
    method = Column(String, nullable=False, default="Cash")
    amount = Column(Integer, nullable=False)
    denominations = Column(JSON, nullable=False, default=dict)
    change_given = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    before_total = Column(Integer, nullable=False)
    after_total = Column(Integer, nullable=False)
    before_denoms = Column(JSON, nullable=False)
    after_denoms = Column(JSON, nullable=False)
    invoice_id = Column(
        Integer, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == "credit" else -self.amount
