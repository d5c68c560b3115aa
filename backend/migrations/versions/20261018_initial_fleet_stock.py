"""Initial fleet stock schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("buying_price_cents", sa.Integer(), nullable=True),
        sa.Column("selling_price_cents", sa.Integer(), nullable=True),
        sa.Column("packaging_structure", sa.JSON(), nullable=False),
        sa.Column("total_base_pieces", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("last_invoice_ref", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("total_base_pieces >= 0", name="ck_inventory_items_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_items", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_items_category", ["category"], unique=False)
        batch_op.create_index("ix_inventory_items_category_name", ["category", "product_name"], unique=False)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vehicle_name", sa.String(128), nullable=False),
        sa.Column("vehicle_number", sa.String(64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("vehicle_number", name="uq_vehicles_number"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "vehicle_stock_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("layer_index", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(64), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_vehicle_stock_non_negative"),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("vehicle_id", "item_id", "layer_index", name="uq_vehicle_stock_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("vehicle_stock_entries", schema=None) as batch_op:
        batch_op.create_index("ix_vehicle_stock_entries_vehicle_id", ["vehicle_id"], unique=False)
        batch_op.create_index("ix_vehicle_stock_entries_item_id", ["item_id"], unique=False)

    op.create_table(
        "unit_breakdowns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("from_layer", sa.Integer(), nullable=False),
        sa.Column("to_layer", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("resulting_quantity", sa.BigInteger(), nullable=False),
        sa.Column("conversion_rate", sa.BigInteger(), nullable=False),
        sa.Column("performed_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("unit_breakdowns", schema=None) as batch_op:
        batch_op.create_index("ix_unit_breakdowns_vehicle_id", ["vehicle_id"], unique=False)
        batch_op.create_index("ix_unit_breakdowns_item_id", ["item_id"], unique=False)

    op.create_table(
        "stock_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_number", sa.String(32), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("confirmed_by", sa.String(64), nullable=True),
        sa.Column("cancelled_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_number", name="uq_stock_transfers_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transfers", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transfers_vehicle_id", ["vehicle_id"], unique=False)
        batch_op.create_index("ix_stock_transfers_direction", ["direction"], unique=False)
        batch_op.create_index("ix_stock_transfers_status", ["status"], unique=False)
        batch_op.create_index("ix_stock_transfers_vehicle_created", ["vehicle_id", "created_at"], unique=False)

    op.create_table(
        "stock_transfer_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("layer_index", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(64), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("pieces_per_unit", sa.BigInteger(), nullable=False),
        sa.Column("base_pieces", sa.BigInteger(), nullable=False),
        sa.Column("collected", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["transfer_id"], ["stock_transfers.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_id", "item_id", "layer_index", name="uq_transfer_line_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transfer_lines", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transfer_lines_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_stock_transfer_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("delta_base_pieces", sa.BigInteger(), nullable=False),
        sa.Column("previous_stock", sa.BigInteger(), nullable=False),
        sa.Column("new_stock", sa.BigInteger(), nullable=False),
        sa.Column("layer_index", sa.Integer(), nullable=True),
        sa.Column("layer_quantity", sa.BigInteger(), nullable=True),
        sa.Column("transfer_id", sa.Integer(), nullable=True),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        sa.Column("invoice_ref", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["transfer_id"], ["stock_transfers.id"]),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_stock_adjustments_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_stock_adjustments_reason", ["reason"], unique=False)
        batch_op.create_index("ix_stock_adjustments_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_stock_adjustments_vehicle_id", ["vehicle_id"], unique=False)
        batch_op.create_index("ix_stock_adjustments_item_created", ["item_id", "created_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("period", sa.String(8), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "period", name="uq_doc_sequences_type_period"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("stock_adjustments")
    op.drop_table("stock_transfer_lines")
    op.drop_table("stock_transfers")
    op.drop_table("unit_breakdowns")
    op.drop_table("vehicle_stock_entries")
    op.drop_table("vehicles")
    op.drop_table("inventory_items")
