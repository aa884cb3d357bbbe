"""initial catalog schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")

    op.create_table(
        "catalog_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("identifier", sa.String(length=10), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("images", json_type, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("brand", sa.String(length=128), nullable=True),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("review_count", sa.Integer(), nullable=True),
        sa.Column("availability", sa.String(length=64), nullable=True),
        sa.Column("is_prime", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cost_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("retail_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("compare_at_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("competitor_prices", json_type, nullable=False, server_default=sa.text("'{}'")),
        sa.Column("profit_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("profit_percent", sa.Numeric(7, 2), nullable=True),
        sa.Column("profit_status", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("storefront_product_id", sa.String(length=64), nullable=True),
        sa.Column("storefront_variant_id", sa.String(length=64), nullable=True),
        sa.Column("push_status", sa.String(length=16), nullable=False, server_default="not_pushed"),
        sa.Column("push_error", sa.Text(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("import_job_id", sa.String(length=36), nullable=True),
        sa.Column("last_enriched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("identifier", name="uq_catalog_entries_identifier"),
    )

    op.create_index("ix_catalog_entries_identifier", "catalog_entries", ["identifier"])
    op.create_index("ix_catalog_entries_title", "catalog_entries", ["title"])
    op.create_index("ix_catalog_entries_category", "catalog_entries", ["category"])
    op.create_index("ix_catalog_entries_status", "catalog_entries", ["status"])
    op.create_index("ix_catalog_entries_push_status", "catalog_entries", ["push_status"])
    op.create_index("ix_catalog_entries_import_job_id", "catalog_entries", ["import_job_id"])


def downgrade() -> None:
    op.drop_table("catalog_entries")
