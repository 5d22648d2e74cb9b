"""users, orders and offline sync metadata

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-02-08

"""

from alembic import op
import sqlalchemy as sa


revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ---- Users ----
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=180), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="CASHIER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("users") as batch_op:
        batch_op.create_index(batch_op.f("ix_users_email"), ["email"], unique=True)

    # ---- Orders (cache local + metadatos de sync) ----
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=True),
        sa.Column("order_number", sa.String(length=40), nullable=False),
        sa.Column("server_id", sa.String(length=64), nullable=True),
        sa.Column("server_order_number", sa.String(length=40), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("customer_phone", sa.String(length=40), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=14, scale=2), nullable=False, server_default="0.00"),
        sa.Column("paid_amount", sa.Numeric(precision=14, scale=2), nullable=False, server_default="0.00"),
        sa.Column("remaining_amount", sa.Numeric(precision=14, scale=2), nullable=False, server_default="0.00"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="UNPAID"),
        sa.Column("payment_method", sa.String(length=20), nullable=False, server_default="TUNAI"),
        sa.Column("received_by", sa.String(length=120), nullable=True),
        sa.Column("is_tempo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("production_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("assigned_to", sa.String(length=120), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("financial_action", sa.String(length=20), nullable=True),
        sa.Column("marketing_evidence_url", sa.String(length=255), nullable=True),
        sa.Column("is_public_content", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_approved_for_social", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("sync_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("sync_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sync_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_sync_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("next_sync_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("orders") as batch_op:
        batch_op.create_index(batch_op.f("ix_orders_uuid"), ["uuid"], unique=True)
        batch_op.create_index(batch_op.f("ix_orders_order_number"), ["order_number"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_server_id"), ["server_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_payment_status"), ["payment_status"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_production_status"), ["production_status"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_sync_status"), ["sync_status"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_next_sync_attempt_at"), ["next_sync_attempt_at"], unique=False)
        batch_op.create_index(batch_op.f("ix_orders_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_orders_sync_status_next", ["sync_status", "next_sync_attempt_at"], unique=False)

    # ---- Order items ----
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("product_name", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pricing_type", sa.String(length=20), nullable=True),
        sa.Column("qty", sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("subtotal", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("specs", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("order_items") as batch_op:
        batch_op.create_index(batch_op.f("ix_order_items_order_id"), ["order_id"], unique=False)


def downgrade():
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("users")
