"""initial invoicing schema

Revision ID: 0001_initial
Revises: None
Create Date: 2026-09-14
"""

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    """Create catalog, invoice, purchase and cash drawer tables."""

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("hsn_code", sa.String(), nullable=False),
        sa.Column("rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("price_type", sa.String(), nullable=False, server_default="Exclusive"),
        sa.Column("tax_slab", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("units", sa.String(), nullable=False, server_default="per piece"),
        sa.Column("quantity_in_stock", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_type", sa.String(), nullable=False, server_default="B2C"),
        sa.Column("firm_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("gstin", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("contact", sa.String(), nullable=True),
    )
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("gstin", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
    )
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("guest_name", sa.String(), nullable=True),
        *[
            sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default="0")
            for name in (
                "subtotal",
                "cgst",
                "sgst",
                "igst",
                "total_tax",
                "total_amount",
                "discount",
                "shipping_charges",
                "grand_total",
                "paid_amount",
                "balance",
            )
        ],
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("billing_type", sa.String(), nullable=True),
        sa.Column("export_info", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="ACTIVE"),
        sa.Column("pdf_path", sa.String(), nullable=True),
        sa.Column("portal_token", sa.String(), nullable=True),
        sa.Column("portal_token_expires", sa.DateTime(), nullable=True),
        sa.Column("invoice_date", sa.DateTime(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_invoices_invoice_date", "invoices", ["invoice_date"])
    op.create_index("ix_invoices_customer_id", "invoices", ["customer_id"])
    op.create_table(
        "invoice_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("hsn_code", sa.String(), nullable=True),
        sa.Column("units", sa.String(), nullable=True),
        sa.Column("rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("price_type", sa.String(), nullable=False, server_default="Exclusive"),
        sa.Column("tax_slab", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("discount_type", sa.String(), nullable=False, server_default="flat"),
        sa.Column("taxable_value", sa.Numeric(14, 4), nullable=True),
        sa.Column("cgst", sa.Numeric(14, 4), nullable=True),
        sa.Column("sgst", sa.Numeric(14, 4), nullable=True),
        sa.Column("igst", sa.Numeric(14, 4), nullable=True),
    )
    op.create_table(
        "invoice_counters",
        sa.Column("series", sa.String(), primary_key=True),
        sa.Column("current", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("purchase_date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_table(
        "purchase_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "purchase_id",
            sa.Integer(),
            sa.ForeignKey("purchases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("purchase_price", sa.Numeric(12, 2), nullable=False),
    )
    op.create_table(
        "cash_drawer",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("denominations", sa.JSON(), nullable=False),
        sa.Column("total_cash", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_table(
        "cash_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("drawer_id", sa.Integer(), sa.ForeignKey("cash_drawer.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False, server_default="Cash"),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("denominations", sa.JSON(), nullable=False),
        sa.Column("change_given", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("before_total", sa.Integer(), nullable=False),
        sa.Column("after_total", sa.Integer(), nullable=False),
        sa.Column("before_denoms", sa.JSON(), nullable=False),
        sa.Column("after_denoms", sa.JSON(), nullable=False),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "cash_transactions",
        "cash_drawer",
        "purchase_lines",
        "purchases",
        "invoice_counters",
        "invoice_lines",
    ):
        op.drop_table(table)
    op.drop_index("ix_invoices_customer_id", table_name="invoices")
    op.drop_index("ix_invoices_invoice_date", table_name="invoices")
    for table in ("invoices", "suppliers", "customers", "items"):
        op.drop_table(table)
