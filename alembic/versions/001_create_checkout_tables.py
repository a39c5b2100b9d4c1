"""Create checkout pricing tables.

Revision ID: 001
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("customer_id", sa.String(100), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("min_order_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_discount", sa.Numeric(10, 2), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("per_customer_limit", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("applicable_products", JSONB, nullable=True),
        sa.Column("applicable_categories", JSONB, nullable=True),
        sa.Column("first_time_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)

    op.create_table(
        "promo_code_usage",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "promo_code_id",
            sa.String(64),
            sa.ForeignKey("promo_codes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("customer_id", sa.String(100), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "used_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_promo_code_usage_customer_id", "promo_code_usage", ["customer_id"])
    op.create_index("ix_promo_code_usage_order_id", "promo_code_usage", ["order_id"])

    op.create_table(
        "deals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("description", sa.String(100), nullable=False),
        sa.Column("start_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("end_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reward_skus", sa.Text(), nullable=True),
        sa.Column("reward_auto_add", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "gift_cards",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("initial_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("balance", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("order_id", sa.String(64), nullable=True),
        sa.Column("purchaser_name", sa.String(255), nullable=True),
        sa.Column("purchaser_email", sa.String(255), nullable=True),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("send_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_redeemed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_gift_cards_code", "gift_cards", ["code"], unique=True)
    op.create_index("ix_gift_cards_status", "gift_cards", ["status"])
    op.create_index("ix_gift_cards_order_id", "gift_cards", ["order_id"])
    op.create_index("ix_gift_cards_recipient_email", "gift_cards", ["recipient_email"])

    op.create_table(
        "gift_card_transactions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "gift_card_id",
            sa.String(64),
            sa.ForeignKey("gift_cards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(10, 2), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=True),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("performed_by_id", sa.String(100), nullable=False),
        sa.Column("performed_by_name", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_gift_card_transactions_gift_card_id", "gift_card_transactions", ["gift_card_id"]
    )
    op.create_index("ix_gift_card_transactions_type", "gift_card_transactions", ["type"])

    op.create_table(
        "sales_tax_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(64), nullable=True),
        sa.Column("sales_tax_request", sa.Text(), nullable=False),
        sa.Column("sales_tax_response", sa.Text(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_sales_tax_logs_order_id", "sales_tax_logs", ["order_id"])

    op.create_table(
        "shipment_history",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("carrier", sa.String(20), nullable=False),
        sa.Column("service_code", sa.String(100), nullable=False),
        sa.Column("service_name", sa.String(255), nullable=False),
        sa.Column("tracking_number", sa.String(100), nullable=False),
        sa.Column("label_url", sa.Text(), nullable=True),
        sa.Column("label_format", sa.String(10), nullable=True),
        sa.Column("rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("origin_address", sa.Text(), nullable=True),
        sa.Column("destination_address", sa.Text(), nullable=True),
        sa.Column("carrier_shipment_id", sa.String(100), nullable=True),
        sa.Column("raw_response", sa.Text(), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_shipment_history_order_id", "shipment_history", ["order_id"])
    op.create_index("ix_shipment_history_carrier", "shipment_history", ["carrier"])
    op.create_index("ix_shipment_history_status", "shipment_history", ["status"])
    op.create_index(
        "ix_shipment_history_tracking_number", "shipment_history", ["tracking_number"]
    )
    op.create_index("ix_shipment_history_created_at", "shipment_history", ["created_at"])


def downgrade() -> None:
    op.drop_table("shipment_history")
    op.drop_table("sales_tax_logs")
    op.drop_table("gift_card_transactions")
    op.drop_table("gift_cards")
    op.drop_table("deals")
    op.drop_table("promo_code_usage")
    op.drop_table("promo_codes")
    op.drop_table("orders")
