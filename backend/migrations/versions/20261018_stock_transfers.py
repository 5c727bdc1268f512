"""Add stock transfers between locations

Revision ID: 20261018_stock_transfers
Revises: 20260301_initial_schema
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_stock_transfers"
down_revision = "20260301_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "transfer_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("from_location_id", sa.Integer(), nullable=False),
        sa.Column("to_location_id", sa.Integer(), nullable=False),
        sa.Column("transfer_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_by_user_id", sa.Integer(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_by_user_id", sa.Integer(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["to_location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "transfer_number", name="uq_transfer_orders_org_number"),
        sa.CheckConstraint("from_location_id <> to_location_id", name="ck_transfer_orders_distinct_locations"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfer_orders", schema=None) as batch_op:
        batch_op.create_index("ix_transfer_orders_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_transfer_orders_org_status", ["org_id", "status"], unique=False)

    op.create_table(
        "transfer_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["transfer_id"], ["transfer_orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transfer_id", "product_id", name="uq_transfer_lines_product"),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_lines_quantity_positive"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfer_lines", schema=None) as batch_op:
        batch_op.create_index("ix_transfer_lines_transfer_id", ["transfer_id"], unique=False)

    op.create_table(
        "transfer_line_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_line_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["transfer_line_id"], ["transfer_lines.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfer_line_batches", schema=None) as batch_op:
        batch_op.create_index("ix_transfer_line_batches_transfer_line_id", ["transfer_line_id"], unique=False)


def downgrade():
    op.drop_table("transfer_line_batches")
    op.drop_table("transfer_lines")
    op.drop_table("transfer_orders")
