"""inventory ledger

Revision ID: 0001_inventory_ledger
Revises:
Create Date: 2026-01-01 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_inventory_ledger"
down_revision = None
branch_labels = None
depends_on = None


purchase_order_status = sa.Enum(
    "PENDING_APPROVAL",
    "PENDING_RECEIPT",
    "PARTIALLY_RECEIVED",
    "RECEIVED",
    "CLOSED",
    "CANCELLED",
    name="purchase_order_status",
)
sales_order_status = sa.Enum(
    "DRAFT",
    "PENDING_FULFILLMENT",
    "PARTIALLY_FULFILLED",
    "FULFILLED",
    "CLOSED",
    "CANCELLED",
    name="sales_order_status",
)
item_fulfillment_status = sa.Enum("PICKED", "PACKED", "SHIPPED", "DELIVERED", name="item_fulfillment_status")
inventory_adjustment_status = sa.Enum("DRAFT", "POSTED", name="inventory_adjustment_status")
cost_layer_type = sa.Enum("RECEIPT", "ADJUSTMENT", name="cost_layer_type")


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(length=100)),
    ]


def upgrade() -> None:
    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("default_currency", sa.String(length=10), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=100), unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_on_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_committed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_backordered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_available", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_audit_columns(),
    )
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(length=55), nullable=False, unique=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id")),
        sa.Column("status", purchase_order_status, nullable=False),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("expected_date", sa.Date()),
        sa.Column("currency", sa.String(length=10)),
        sa.Column("exchange_rate", sa.Numeric(14, 6)),
        sa.Column("reference", sa.String(length=100)),
        sa.Column("notes", sa.Text()),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("closed_at", sa.DateTime()),
        *_audit_columns(),
        sqlite_autoincrement=True,
    )
    op.create_index("idx_po_status", "purchase_orders", ["status"])
    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_order_id", sa.Integer(), sa.ForeignKey("purchase_orders.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rate", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("closed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        "item_receipts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("receipt_number", sa.String(length=55), nullable=False, unique=True),
        sa.Column("purchase_order_id", sa.Integer(), sa.ForeignKey("purchase_orders.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id")),
        sa.Column("receipt_date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text()),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "item_receipt_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_receipt_id", sa.Integer(), sa.ForeignKey("item_receipts.id"), nullable=False),
        sa.Column("purchase_order_line_id", sa.Integer(), sa.ForeignKey("purchase_order_lines.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
    )
    op.create_table(
        "sales_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(length=55), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(length=200)),
        sa.Column("status", sales_order_status, nullable=False),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        *_audit_columns(),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "sales_order_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sales_order_id", sa.Integer(), sa.ForeignKey("sales_orders.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_committed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_backordered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_fulfilled", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(14, 2)),
    )
    op.create_table(
        "item_fulfillments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fulfillment_number", sa.String(length=55), nullable=False, unique=True),
        sa.Column("sales_order_id", sa.Integer(), sa.ForeignKey("sales_orders.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id")),
        sa.Column("status", item_fulfillment_status, nullable=False),
        sa.Column("fulfillment_date", sa.DateTime(), nullable=False),
        sa.Column("ship_method", sa.String(length=100)),
        sa.Column("tracking_number", sa.String(length=100)),
        sa.Column("shipped_at", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        *_audit_columns(),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "item_fulfillment_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_fulfillment_id", sa.Integer(), sa.ForeignKey("item_fulfillments.id"), nullable=False),
        sa.Column("sales_order_line_id", sa.Integer(), sa.ForeignKey("sales_order_lines.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity_fulfilled", sa.Integer(), nullable=False),
        sa.Column("cost_of_goods_sold", sa.Numeric(14, 2)),
    )
    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("adjustment_number", sa.String(length=55), nullable=False, unique=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id")),
        sa.Column("reason", sa.String(length=100), nullable=False),
        sa.Column("memo", sa.Text()),
        sa.Column("status", inventory_adjustment_status, nullable=False),
        sa.Column("posted_at", sa.DateTime()),
        *_audit_columns(),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "inventory_adjustment_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inventory_adjustment_id", sa.Integer(), sa.ForeignKey("inventory_adjustments.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("quantity_before", sa.Integer()),
        sa.Column("quantity_after", sa.Integer()),
        sa.Column("unit_cost", sa.Numeric(14, 2)),
        sa.Column("notes", sa.Text()),
    )
    op.create_table(
        "cost_layers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("item_receipt_line_id", sa.Integer(), sa.ForeignKey("item_receipt_lines.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id")),
        sa.Column("layer_type", cost_layer_type, nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False),
        sa.Column("quantity_remaining", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("receipt_date", sa.DateTime(), nullable=False),
        sa.Column("source_type", sa.String(length=50)),
        sa.Column("source_id", sa.Integer()),
        sa.CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_received",
            name="ck_cost_layer_remaining_in_range",
        ),
    )
    op.create_index("idx_cost_layer_item_receipt_date", "cost_layers", ["item_id", "receipt_date"])
    op.create_table(
        "item_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reference_type", sa.String(length=50)),
        sa.Column("reference_id", sa.Integer()),
        sa.Column("on_hand_delta", sa.Integer()),
        sa.Column("on_order_delta", sa.Integer()),
        sa.Column("committed_delta", sa.Integer()),
        sa.Column("backordered_delta", sa.Integer()),
        sa.Column("cost_consumed", sa.Numeric(14, 2)),
        sa.Column("event_metadata", sa.Text()),
        sa.Column("event_date", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_item_event_reference", "item_events", ["reference_type", "reference_id"])
    op.create_index("idx_item_event_item_date", "item_events", ["item_id", "event_date"])
    op.create_table(
        "layer_consumptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cost_layer_id", sa.Integer(), sa.ForeignKey("cost_layers.id"), nullable=False),
        sa.Column("item_event_id", sa.Integer(), sa.ForeignKey("item_events.id")),
        sa.Column("transaction_type", sa.String(length=50), nullable=False),
        sa.Column("transaction_id", sa.Integer()),
        sa.Column("quantity_consumed", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "order_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_type", sa.String(length=50), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("previous_state", sa.Text()),
        sa.Column("new_state", sa.Text()),
        sa.Column("event_metadata", sa.Text()),
        sa.Column("event_date", sa.DateTime(), nullable=False),
    )
    op.create_index("idx_order_event_order", "order_events", ["order_type", "order_id"])
    op.create_table(
        "document_sequences",
        sa.Column("prefix", sa.String(length=20), primary_key=True),
        sa.Column("current_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("document_sequences")
    op.drop_index("idx_order_event_order", table_name="order_events")
    op.drop_table("order_events")
    op.drop_table("layer_consumptions")
    op.drop_index("idx_item_event_item_date", table_name="item_events")
    op.drop_index("idx_item_event_reference", table_name="item_events")
    op.drop_table("item_events")
    op.drop_index("idx_cost_layer_item_receipt_date", table_name="cost_layers")
    op.drop_table("cost_layers")
    op.drop_table("inventory_adjustment_lines")
    op.drop_table("inventory_adjustments")
    op.drop_table("item_fulfillment_lines")
    op.drop_table("item_fulfillments")
    op.drop_table("sales_order_lines")
    op.drop_table("sales_orders")
    op.drop_table("item_receipt_lines")
    op.drop_table("item_receipts")
    op.drop_table("purchase_order_lines")
    op.drop_index("idx_po_status", table_name="purchase_orders")
    op.drop_table("purchase_orders")
    op.drop_table("items")
    op.drop_table("locations")
    op.drop_table("vendors")

    bind = op.get_bind()
    for enum in (
        cost_layer_type,
        inventory_adjustment_status,
        item_fulfillment_status,
        sales_order_status,
        purchase_order_status,
    ):
        enum.drop(bind, checkfirst=True)
