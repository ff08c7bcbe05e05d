"""initial bridge schema

Revision ID: 0001_bridge
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_bridge"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shop_scope", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("order_id", sa.String(length=191), nullable=False),
        sa.Column("payment_attempt_id", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("customer_id", sa.String(length=191), nullable=True),
        sa.Column("amount", sa.String(length=32), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False),
        sa.Column("gateway_txn_id", sa.String(length=191), nullable=True),
        sa.Column("status_history", sa.JSON(), nullable=False),
        sa.Column("raw_notify", sa.JSON(), nullable=True),
        sa.Column("state_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "shop_scope", "order_id", "payment_attempt_id", name="ux_payments_shop_order_attempt"
        ),
    )
    op.create_index("ix_payments_shop_scope", "payments", ["shop_scope"])
    op.create_index("ix_payments_order_id", "payments", ["order_id"])
    op.create_index("ix_payments_payment_attempt_id", "payments", ["payment_attempt_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "shops",
        sa.Column("shop", sa.String(length=191), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("installed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("uninstalled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("shop"),
    )

    op.create_table(
        "rg_settings",
        sa.Column("shop_domain", sa.String(length=191), nullable=False),
        sa.Column("merchant_id", sa.String(length=191), nullable=True),
        sa.Column("merchant_key", sa.String(length=191), nullable=True),
        sa.Column("mode", sa.String(length=16), nullable=False, server_default="test"),
        sa.Column("return_url", sa.Text(), nullable=True),
        sa.Column("cancel_url", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("shop_domain"),
    )

    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("topic", sa.String(length=191), nullable=False),
        sa.Column("idempotency_key", sa.String(length=191), nullable=True),
        sa.Column("headers", sa.Text(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_webhook_logs_source", "webhook_logs", ["source"])
    op.create_index("ix_webhook_logs_topic", "webhook_logs", ["topic"])


def downgrade() -> None:
    op.drop_index("ix_webhook_logs_topic", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_source", table_name="webhook_logs")
    op.drop_table("webhook_logs")
    op.drop_table("rg_settings")
    op.drop_table("shops")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_payment_attempt_id", table_name="payments")
    op.drop_index("ix_payments_order_id", table_name="payments")
    op.drop_index("ix_payments_shop_scope", table_name="payments")
    op.drop_table("payments")
