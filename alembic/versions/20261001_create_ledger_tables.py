"""create orders and transactions tables"""
from alembic import op
import sqlalchemy as sa

revision = "20261001_create_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPES = ("authorization", "capture", "refund", "void", "webhook")
TRANSACTION_STATUSES = ("pending", "processing", "success", "failed", "canceled")
ORDER_STATES = ("new", "pending_payment", "processing", "complete", "canceled", "closed")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reference", sa.String(length=64), nullable=False),
        sa.Column("state", sa.Enum(*ORDER_STATES, name="orderstate"), nullable=False),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("payment_info", sa.JSON(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("grand_total", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_paid", sa.Numeric(18, 2), nullable=True),
        sa.Column("cart_active", sa.Boolean(), nullable=False),
        sa.Column("invoice_id", sa.String(length=64), nullable=True),
        sa.Column("credit_memos", sa.JSON(), nullable=False),
        sa.Column("history", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_orders_reference", "orders", ["reference"], unique=True)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(length=128), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("order_reference", sa.String(length=64), nullable=True),
        sa.Column("type", sa.Enum(*TRANSACTION_TYPES, name="transactiontype"), nullable=False),
        sa.Column("status", sa.Enum(*TRANSACTION_STATUSES, name="transactionstatus"), nullable=False),
        sa.Column("previous_status", sa.String(length=20), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("request_data", sa.Text(), nullable=True),
        sa.Column("response_data", sa.Text(), nullable=True),
        sa.Column("webhook_data", sa.Text(), nullable=True),
        sa.Column("status_history", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("transaction_id", name="uq_transactions_transaction_id"),
    )
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_order_reference", "transactions", ["order_reference"])
    op.create_index("ix_transactions_order_type", "transactions", ["order_id", "type"])


def downgrade() -> None:
    op.drop_index("ix_transactions_order_type", table_name="transactions")
    op.drop_index("ix_transactions_order_reference", table_name="transactions")
    op.drop_index("ix_transactions_status", table_name="transactions")
    op.drop_index("ix_transactions_created_at", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_orders_reference", table_name="orders")
    op.drop_table("orders")
    sa.Enum(name="transactionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="orderstate").drop(op.get_bind(), checkfirst=True)
