"""initial_sync_tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "1a2b3c4d5e6f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("network_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "advertisers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("doc_key", sa.String(length=255), nullable=False),
        sa.Column("network", sa.String(length=50), nullable=False),
        sa.Column("network_id", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("country", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=True),
        sa.Column("manual_description", sa.Text(), nullable=True),
        sa.Column("manual_home_url", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("storage_logo_url", sa.Text(), nullable=True),
        sa.Column("is_manual_logo", sa.Boolean(), nullable=True),
        sa.Column("is_manual_category", sa.Boolean(), nullable=True),
        sa.Column("affiliate_home_url", sa.Text(), nullable=True),
        sa.Column("product_count", sa.Integer(), nullable=True),
        sa.Column("offer_count", sa.Integer(), nullable=True),
        sa.Column("sale_product_count", sa.Integer(), nullable=True),
        sa.Column("has_promo_codes", sa.Boolean(), nullable=True),
        sa.Column("has_sale_items", sa.Boolean(), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_advertisers_doc_key"), "advertisers", ["doc_key"], unique=True)
    op.create_index(op.f("ix_advertisers_network"), "advertisers", ["network"], unique=False)
    op.create_index(op.f("ix_advertisers_network_id"), "advertisers", ["network_id"], unique=False)

    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("doc_key", sa.String(length=255), nullable=False),
        sa.Column("network", sa.String(length=50), nullable=False),
        sa.Column("network_id", sa.String(length=100), nullable=True),
        sa.Column("advertiser_id", sa.String(length=100), nullable=True),
        sa.Column("legacy_advertiser_id", sa.Integer(), nullable=True),
        sa.Column("advertiser_name", sa.String(length=300), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("code", sa.String(length=100), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_offers_doc_key"), "offers", ["doc_key"], unique=True)
    op.create_index(op.f("ix_offers_network"), "offers", ["network"], unique=False)
    op.create_index(op.f("ix_offers_advertiser_id"), "offers", ["advertiser_id"], unique=False)
    op.create_index(op.f("ix_offers_legacy_advertiser_id"), "offers", ["legacy_advertiser_id"], unique=False)
    op.create_index(op.f("ix_offers_end_date"), "offers", ["end_date"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("doc_key", sa.String(length=255), nullable=False),
        sa.Column("network", sa.String(length=50), nullable=False),
        sa.Column("network_id", sa.String(length=200), nullable=True),
        sa.Column("sku", sa.String(length=200), nullable=True),
        sa.Column("advertiser_id", sa.String(length=100), nullable=True),
        sa.Column("legacy_advertiser_id", sa.Integer(), nullable=True),
        sa.Column("advertiser_name", sa.String(length=300), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("sale_price", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("storage_image_url", sa.Text(), nullable=True),
        sa.Column("search_keywords", sa.JSON(), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_doc_key"), "products", ["doc_key"], unique=True)
    op.create_index(op.f("ix_products_network"), "products", ["network"], unique=False)
    op.create_index(op.f("ix_products_advertiser_id"), "products", ["advertiser_id"], unique=False)
    op.create_index(op.f("ix_products_legacy_advertiser_id"), "products", ["legacy_advertiser_id"], unique=False)

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=50), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("network", sa.String(length=50), nullable=False),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sync_logs_network"), "sync_logs", ["network"], unique=False)
    op.create_index(op.f("ix_sync_logs_completed_at"), "sync_logs", ["completed_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_sync_logs_completed_at"), table_name="sync_logs")
    op.drop_index(op.f("ix_sync_logs_network"), table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_table("settings")
    op.drop_table("products")
    op.drop_table("offers")
    op.drop_table("advertisers")
