# schemas.py

"""Pydantic models for API payloads.

Money fields are ``Decimal`` so amounts posted as strings or numbers are
coerced once, here, and stay exact through the services.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class InvoiceLineIn(BaseModel):
    """One invoice line referencing a catalog item."""

    item_id: int
    quantity: int = Field(gt=0)
    rate: Optional[Decimal] = Field(default=None, ge=0)
    price_type: Optional[Literal["Exclusive", "Inclusive"]] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_type: Literal["flat", "percent"] = "flat"
    name: Optional[str] = None


class ExportInfo(BaseModel):
    is_export: bool = False
    export_type: Literal["EXPORT", "SEZ"] = "EXPORT"
    with_tax: bool = False
    shipping_bill_no: Optional[str] = None
    shipping_bill_date: Optional[str] = None
    port_code: Optional[str] = None


class InvoiceIn(BaseModel):
    """Input schema for creating or updating an invoice."""

    customer_id: Optional[int] = None
    guest_name: Optional[str] = None
    items: List[InvoiceLineIn] = Field(min_length=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_charges: Decimal = Field(default=Decimal("0"), ge=0)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: Optional[str] = None
    billing_type: Optional[str] = None
    export_info: Optional[ExportInfo] = None
    invoice_date: Optional[datetime] = None


class PaymentIn(BaseModel):
    amount: Decimal = Field(gt=0)
    method: Optional[str] = None


class PortalLinkIn(BaseModel):
    base_url: Optional[str] = None


class CashSaleIn(BaseModel):
    """Cash taken for a sale; ``tendered`` maps face value to count."""

    invoice_id: Optional[int] = None
    amount_received: Decimal = Field(gt=0)
    tendered: Dict[int, int]


class CashAdjustIn(BaseModel):
    direction: Literal["add", "remove"]
    denominations: Dict[int, int]
    reason: Optional[str] = None


class ChangeIn(BaseModel):
    amount: Decimal = Field(ge=0)
    tendered: Dict[int, int] = Field(default_factory=dict)


class PurchaseLineIn(BaseModel):
    item_id: int
    quantity: int = Field(gt=0)
    purchase_price: Decimal = Field(ge=0)


class PurchaseIn(BaseModel):
    """Input schema for recording a purchase bill."""

    supplier_id: int
    items: List[PurchaseLineIn] = Field(min_length=1)
    purchase_date: Optional[datetime] = None
    notes: Optional[str] = None
