"""store catalog rates exclusive of tax

Revision ID: 0002_exclusive_rates
Revises: 0001_initial
Create Date: 2026-09-21
"""

import sqlalchemy as sa
from alembic import op

from invoicing.app.tax.normalize import normalize_rate

revision: str = "0002_exclusive_rates"
down_revision: str | None = "0001_initial"
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None

items = sa.table(
    "items",
    sa.column("id", sa.Integer),
    sa.column("rate", sa.Numeric(12, 2)),
    sa.column("tax_slab", sa.Numeric(5, 2)),
    sa.column("price_type", sa.String),
)


def upgrade() -> None:
    """Rewrite Inclusive catalog rows to their exclusive rate."""

    conn = op.get_bind()
    rows = conn.execute(
        sa.select(items.c.id, items.c.rate, items.c.tax_slab).where(
            items.c.price_type == "Inclusive"
        )
    ).all()
    for item_id, rate, tax_slab in rows:
        conn.execute(
            items.update()
            .where(items.c.id == item_id)
            .values(
                rate=normalize_rate(rate, tax_slab, "Inclusive"),
                price_type="Exclusive",
            )
        )


def downgrade() -> None:
    # Original inclusive prices are not recoverable exactly.
    pass
