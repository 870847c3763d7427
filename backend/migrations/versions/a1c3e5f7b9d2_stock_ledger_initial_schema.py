"""Stock ledger: variants_stock counters, append-only ledger_entries, reservations

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1c3e5f7b9d2"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "variants_stock",
        sa.Column("variant_id", sa.String(length=64), primary_key=True),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("track_inventory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("on_hand >= 0", name="ck_variants_stock_on_hand_nonneg"),
        sa.CheckConstraint("reserved >= 0", name="ck_variants_stock_reserved_nonneg"),
        sa.CheckConstraint("on_hand >= reserved", name="ck_variants_stock_available_nonneg"),
    )
    op.create_index("ix_variants_stock_product_id", "variants_stock", ["product_id"], unique=False)
    op.create_index("ix_variants_stock_tracked", "variants_stock", ["track_inventory"], unique=False)

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("variant_id", sa.String(length=64), nullable=False),
        sa.Column("entry_type", sa.String(length=16), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resulting_on_hand", sa.Integer(), nullable=False),
        sa.Column("resulting_reserved", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["variant_id"], ["variants_stock.variant_id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_entries_variant_id", "ledger_entries", ["variant_id"], unique=False)
    op.create_index("ix_ledger_entries_reason", "ledger_entries", ["reason"], unique=False)
    op.create_index("ix_ledger_entries_reference_id", "ledger_entries", ["reference_id"], unique=False)
    op.create_index("ix_ledger_entries_actor_id", "ledger_entries", ["actor_id"], unique=False)
    op.create_index("ix_ledger_variant_created", "ledger_entries", ["variant_id", "created_at", "id"], unique=False)
    op.create_index("ix_ledger_type_created", "ledger_entries", ["entry_type", "created_at"], unique=False)

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("variant_id", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("tracked", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_reference", sa.String(length=64), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["variant_id"], ["variants_stock.variant_id"]),
        sa.CheckConstraint("quantity > 0", name="ck_reservations_quantity_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_reservations_variant_id", "reservations", ["variant_id"], unique=False)
    op.create_index("ix_reservations_order_reference", "reservations", ["order_reference"], unique=False)
    op.create_index("ix_reservations_status_expires", "reservations", ["status", "expires_at"], unique=False)


def downgrade():
    op.drop_index("ix_reservations_status_expires", table_name="reservations")
    op.drop_index("ix_reservations_order_reference", table_name="reservations")
    op.drop_index("ix_reservations_variant_id", table_name="reservations")
    op.drop_table("reservations")

    op.drop_index("ix_ledger_type_created", table_name="ledger_entries")
    op.drop_index("ix_ledger_variant_created", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_actor_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_reference_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_reason", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_variant_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")

    op.drop_index("ix_variants_stock_tracked", table_name="variants_stock")
    op.drop_index("ix_variants_stock_product_id", table_name="variants_stock")
    op.drop_table("variants_stock")
