"""settlement baseline

Revision ID: 20260301_settlement_baseline
Revises:
Create Date: 2026-03-01 10:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20260301_settlement_baseline"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PERIOD_TYPE = sa.Enum("WEEKLY", "MONTHLY", name="settlementperiodtype")
PERIOD_STATUS = sa.Enum("PREPARING", "PROCESSING", "COMPLETED", name="settlementperiodstatus")
SETTLEMENT_STATUS = sa.Enum(
    "PENDING", "CALCULATING", "COMPLETED", "CANCELLED", "ON_HOLD", name="settlementstatus"
)
EVENT_TYPE = sa.Enum(
    "PERIOD_CREATED",
    "PERIOD_CALCULATED",
    "PERIOD_CALCULATION_FAILED",
    "SETTLEMENT_CREATED",
    "SETTLEMENT_PROCESSED",
    "SETTLEMENT_COMPLETED",
    "SETTLEMENT_HELD",
    "SETTLEMENT_UNHELD",
    "SETTLEMENT_CANCELLED",
    "SETTLEMENT_DELETED",
    "SETTLEMENT_STATUS_FORCED",
    name="settlementeventtype",
)


def upgrade() -> None:
    # ---------- 외부 읽기 모델 ----------
    op.create_table(
        "sellers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("shop_name", sa.String(100), nullable=True),
        sa.Column("bank_type", sa.String(50), nullable=True),
        sa.Column("bank_account", sa.String(50), nullable=True),
        sa.Column("depositor_name", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_sellers_id", "sellers", ["id"])
    op.create_index("ix_sellers_email", "sellers", ["email"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("sellers.id"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("sku_code", sa.String(100), nullable=True),
        sa.Column("category_code", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_seller_id", "products", ["seller_id"])
    op.create_index("ix_products_category_code", "products", ["category_code"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=True),
        sa.Column("order_status", sa.String(20), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])
    op.create_index("ix_order_status_created", "orders", ["payment_status", "order_status", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("sku_code", sa.String(100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.BigInteger(), nullable=False),
        sa.Column("total_price", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_item_qty_positive"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_product_id", "order_items", ["product_id"])

    # ---------- 정산 ----------
    op.create_table(
        "settlement_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("period_type", PERIOD_TYPE, nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("settlement_date", sa.DateTime(), nullable=False),
        sa.Column("status", PERIOD_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("start_date <= end_date", name="ck_settlement_period_range"),
    )
    op.create_index("ix_settlement_periods_id", "settlement_periods", ["id"])
    op.create_index("ix_settlement_period_status", "settlement_periods", ["status"])

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("settlement_period_id", sa.Integer(), sa.ForeignKey("settlement_periods.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("sellers.id"), nullable=False),
        sa.Column("total_order_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_commission", sa.BigInteger(), nullable=False),
        sa.Column("total_delivery_fee", sa.BigInteger(), nullable=False),
        sa.Column("total_refund_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_cancel_amount", sa.BigInteger(), nullable=False),
        sa.Column("adjustment_amount", sa.BigInteger(), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("final_settlement_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", SETTLEMENT_STATUS, nullable=False),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_settlements_id", "settlements", ["id"])
    op.create_index("ix_settlements_settlement_period_id", "settlements", ["settlement_period_id"])
    op.create_index("ix_settlements_seller_id", "settlements", ["seller_id"])
    op.create_index("ix_settlements_created_at", "settlements", ["created_at"])
    op.create_index("ix_settlement_period_seller", "settlements", ["settlement_period_id", "seller_id"])
    op.create_index("ix_settlement_status_created", "settlements", ["status", "created_at"])

    op.create_table(
        "settlement_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "settlement_id", sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("order_item_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("sku_code", sa.String(100), nullable=True),
        sa.Column("category_code", sa.String(100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.BigInteger(), nullable=False),
        sa.Column("total_price", sa.BigInteger(), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_amount", sa.BigInteger(), nullable=False),
        sa.Column("delivery_fee", sa.BigInteger(), nullable=False),
        sa.Column("settlement_amount", sa.BigInteger(), nullable=False),
        sa.Column("order_status", sa.String(20), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_settlement_items_id", "settlement_items", ["id"])
    op.create_index("ix_settlement_items_settlement_id", "settlement_items", ["settlement_id"])
    op.create_index("ix_settlement_items_order_id", "settlement_items", ["order_id"])
    op.create_index("ix_settlement_items_order_item_id", "settlement_items", ["order_item_id"])
    op.create_index("ix_settlement_item_product", "settlement_items", ["product_name", "sku_code"])

    op.create_table(
        "commission_policies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category_code", sa.String(100), nullable=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("sellers.id"), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("min_amount", sa.BigInteger(), nullable=True),
        sa.Column("max_amount", sa.BigInteger(), nullable=True),
        sa.Column("effective_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100", name="ck_commission_rate_range"
        ),
    )
    op.create_index("ix_commission_policies_id", "commission_policies", ["id"])
    op.create_index(
        "ix_commission_policy_lookup",
        "commission_policies",
        ["is_active", "seller_id", "category_code", "effective_date"],
    )

    op.create_table(
        "settlement_event_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", EVENT_TYPE, nullable=False),
        sa.Column("actor_type", sa.String(20), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("settlement_id", sa.Integer(), nullable=True),
        sa.Column("settlement_period_id", sa.Integer(), nullable=True),
        sa.Column("seller_id", sa.Integer(), nullable=True),
        sa.Column("prev_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("batch_id", sa.String(32), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_settlement_event_logs_id", "settlement_event_logs", ["id"])
    op.create_index("ix_settlement_event_logs_settlement_id", "settlement_event_logs", ["settlement_id"])
    op.create_index(
        "ix_settlement_event_logs_settlement_period_id", "settlement_event_logs", ["settlement_period_id"]
    )
    op.create_index("ix_settlement_event_logs_seller_id", "settlement_event_logs", ["seller_id"])
    op.create_index("ix_settlement_event_logs_batch_id", "settlement_event_logs", ["batch_id"])
    op.create_index("ix_settlement_event_logs_created_at", "settlement_event_logs", ["created_at"])
    op.create_index("ix_settlement_event_type_created", "settlement_event_logs", ["event_type", "created_at"])


def downgrade() -> None:
    op.drop_table("settlement_event_logs")
    op.drop_table("commission_policies")
    op.drop_table("settlement_items")
    op.drop_table("settlements")
    op.drop_table("settlement_periods")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("products")
    op.drop_table("sellers")

    bind = op.get_bind()
    for enum_type in (EVENT_TYPE, SETTLEMENT_STATUS, PERIOD_STATUS, PERIOD_TYPE):
        enum_type.drop(bind, checkfirst=True)
