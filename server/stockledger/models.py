from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import composite, relationship

from stockledger.db import Base
from stockledger.inventory.effects import AppliedEffect


PURCHASE_ORDER_STATUSES = (
    "PENDING_APPROVAL",
    "PENDING_RECEIPT",
    "PARTIALLY_RECEIVED",
    "RECEIVED",
    "CLOSED",
    "CANCELLED",
)
SALES_ORDER_STATUSES = (
    "DRAFT",
    "PENDING_FULFILLMENT",
    "PARTIALLY_FULFILLED",
    "FULFILLED",
    "CLOSED",
    "CANCELLED",
)
FULFILLMENT_STATUSES = ("PICKED", "PACKED", "SHIPPED", "DELIVERED")
COST_LAYER_TYPES = ("RECEIPT", "ADJUSTMENT")


@dataclass(frozen=True)
class AuditInfo:
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None

    @classmethod
    def now(cls, created_by: str | None = None) -> "AuditInfo":
        stamp = datetime.utcnow()
        return cls(created_at=stamp, updated_at=stamp, created_by=created_by)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    default_currency = Column(String(10), nullable=False, default="USD")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    sku = Column(String(100), nullable=True, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    quantity_on_order = Column(Integer, nullable=False, default=0)
    quantity_committed = Column(Integer, nullable=False, default=0)
    quantity_backordered = Column(Integer, nullable=False, default=0)
    quantity_available = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    audit = composite(AuditInfo, created_at, updated_at, created_by)
    cost_layers = relationship("CostLayer", back_populates="item")

    __mapper_args__ = {"version_id_col": version}

    @property
    def projected_available(self) -> int:
        """Purchase-side view: what will be free once open POs land."""
        return (self.quantity_on_hand or 0) + (self.quantity_on_order or 0) - (self.quantity_backordered or 0)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(55), nullable=False, unique=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    status = Column(Enum(*PURCHASE_ORDER_STATUSES, name="purchase_order_status"), nullable=False, default="PENDING_APPROVAL")
    order_date = Column(Date, nullable=False)
    expected_date = Column(Date, nullable=True)
    currency = Column(String(10), nullable=True)
    exchange_rate = Column(Numeric(14, 6), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    audit = composite(AuditInfo, created_at, updated_at, created_by)
    vendor = relationship("Vendor")
    location = relationship("Location")
    lines = relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )
    receipts = relationship("ItemReceipt", back_populates="purchase_order", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_po_status", "status"), {"sqlite_autoincrement": True})


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity_ordered = Column(Integer, nullable=False)
    quantity_received = Column(Integer, nullable=False, default=0)
    rate = Column(Numeric(14, 2), nullable=False, default=0)
    closed = Column(Boolean, nullable=False, default=False)

    purchase_order = relationship("PurchaseOrder", back_populates="lines")
    item = relationship("Item")

    @property
    def quantity_outstanding(self) -> int:
        return max(0, (self.quantity_ordered or 0) - (self.quantity_received or 0))


class ItemReceipt(Base):
    __tablename__ = "item_receipts"

    id = Column(Integer, primary_key=True)
    receipt_number = Column(String(55), nullable=False, unique=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    receipt_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    notes = Column(Text, nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="receipts")
    location = relationship("Location")
    lines = relationship("ItemReceiptLine", back_populates="item_receipt", cascade="all, delete-orphan")

    __table_args__ = {"sqlite_autoincrement": True}


class ItemReceiptLine(Base):
    __tablename__ = "item_receipt_lines"

    id = Column(Integer, primary_key=True)
    item_receipt_id = Column(Integer, ForeignKey("item_receipts.id"), nullable=False)
    purchase_order_line_id = Column(Integer, ForeignKey("purchase_order_lines.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity_received = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)

    item_receipt = relationship("ItemReceipt", back_populates="lines")
    purchase_order_line = relationship("PurchaseOrderLine")
    item = relationship("Item")


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(55), nullable=False, unique=True)
    customer_name = Column(String(200), nullable=True)
    status = Column(Enum(*SALES_ORDER_STATUSES, name="sales_order_status"), nullable=False, default="PENDING_FULFILLMENT")
    order_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    audit = composite(AuditInfo, created_at, updated_at, created_by)
    lines = relationship(
        "SalesOrderLine",
        back_populates="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderLine.id",
    )
    fulfillments = relationship("ItemFulfillment", back_populates="sales_order", cascade="all, delete-orphan")

    __table_args__ = {"sqlite_autoincrement": True}


class SalesOrderLine(Base):
    __tablename__ = "sales_order_lines"

    id = Column(Integer, primary_key=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity_ordered = Column(Integer, nullable=False)
    quantity_committed = Column(Integer, nullable=False, default=0)
    quantity_backordered = Column(Integer, nullable=False, default=0)
    quantity_fulfilled = Column(Integer, nullable=False, default=0)
    unit_price = Column(Numeric(14, 2), nullable=True)

    sales_order = relationship("SalesOrder", back_populates="lines")
    item = relationship("Item")

    @property
    def quantity_remaining(self) -> int:
        return max(0, (self.quantity_ordered or 0) - (self.quantity_fulfilled or 0))


class ItemFulfillment(Base):
    __tablename__ = "item_fulfillments"

    id = Column(Integer, primary_key=True)
    fulfillment_number = Column(String(55), nullable=False, unique=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    status = Column(Enum(*FULFILLMENT_STATUSES, name="item_fulfillment_status"), nullable=False, default="PICKED")
    fulfillment_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    ship_method = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    audit = composite(AuditInfo, created_at, updated_at, created_by)
    sales_order = relationship("SalesOrder", back_populates="fulfillments")
    location = relationship("Location")
    lines = relationship("ItemFulfillmentLine", back_populates="item_fulfillment", cascade="all, delete-orphan")

    __table_args__ = {"sqlite_autoincrement": True}

    @property
    def is_shipped(self) -> bool:
        return self.status in {"SHIPPED", "DELIVERED"}

    @property
    def cost_of_goods_sold(self) -> Decimal:
        return sum((Decimal(line.cost_of_goods_sold or 0) for line in self.lines), Decimal("0"))


class ItemFulfillmentLine(Base):
    __tablename__ = "item_fulfillment_lines"

    id = Column(Integer, primary_key=True)
    item_fulfillment_id = Column(Integer, ForeignKey("item_fulfillments.id"), nullable=False)
    sales_order_line_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity_fulfilled = Column(Integer, nullable=False)
    cost_of_goods_sold = Column(Numeric(14, 2), nullable=True)

    item_fulfillment = relationship("ItemFulfillment", back_populates="lines")
    sales_order_line = relationship("SalesOrderLine")
    item = relationship("Item")


class InventoryAdjustment(Base):
    __tablename__ = "inventory_adjustments"

    id = Column(Integer, primary_key=True)
    adjustment_number = Column(String(55), nullable=False, unique=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    reason = Column(String(100), nullable=False)
    memo = Column(Text, nullable=True)
    status = Column(Enum("DRAFT", "POSTED", name="inventory_adjustment_status"), nullable=False, default="DRAFT")
    posted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    audit = composite(AuditInfo, created_at, updated_at, created_by)
    location = relationship("Location")
    lines = relationship("InventoryAdjustmentLine", back_populates="inventory_adjustment", cascade="all, delete-orphan")

    __table_args__ = {"sqlite_autoincrement": True}


class InventoryAdjustmentLine(Base):
    __tablename__ = "inventory_adjustment_lines"

    id = Column(Integer, primary_key=True)
    inventory_adjustment_id = Column(Integer, ForeignKey("inventory_adjustments.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity_change = Column(Integer, nullable=False)
    quantity_before = Column(Integer, nullable=True)
    quantity_after = Column(Integer, nullable=True)
    unit_cost = Column(Numeric(14, 2), nullable=True)
    notes = Column(Text, nullable=True)

    inventory_adjustment = relationship("InventoryAdjustment", back_populates="lines")
    item = relationship("Item")


@dataclass(frozen=True)
class LayerDraw:
    layer_id: int | None
    consumed: int
    unit_cost: Decimal
    cost: Decimal


class CostLayer(Base):
    __tablename__ = "cost_layers"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    item_receipt_line_id = Column(Integer, ForeignKey("item_receipt_lines.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    layer_type = Column(Enum(*COST_LAYER_TYPES, name="cost_layer_type"), nullable=False, default="RECEIPT")
    quantity_received = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)
    receipt_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    source_type = Column(String(50), nullable=True)
    source_id = Column(Integer, nullable=True)

    item = relationship("Item", back_populates="cost_layers")
    item_receipt_line = relationship("ItemReceiptLine")

    __table_args__ = (
        CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_received",
            name="ck_cost_layer_remaining_in_range",
        ),
        Index("idx_cost_layer_item_receipt_date", "item_id", "receipt_date"),
    )

    @property
    def total_cost(self) -> Decimal:
        return Decimal(self.quantity_remaining or 0) * Decimal(self.unit_cost or 0)

    def consume(self, quantity: int) -> LayerDraw:
        consumed = max(0, min(quantity, self.quantity_remaining or 0))
        unit_cost = Decimal(self.unit_cost or 0)
        self.quantity_remaining = (self.quantity_remaining or 0) - consumed
        return LayerDraw(layer_id=self.id, consumed=consumed, unit_cost=unit_cost, cost=unit_cost * consumed)


class LayerConsumption(Base):
    __tablename__ = "layer_consumptions"

    id = Column(Integer, primary_key=True)
    cost_layer_id = Column(Integer, ForeignKey("cost_layers.id"), nullable=False)
    item_event_id = Column(Integer, ForeignKey("item_events.id"), nullable=True)
    transaction_type = Column(String(50), nullable=False)
    transaction_id = Column(Integer, nullable=True)
    quantity_consumed = Column(Integer, nullable=False)
    unit_cost = Column(Numeric(14, 2), nullable=False)
    total_cost = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cost_layer = relationship("CostLayer")
    item_event = relationship("ItemEvent")


class ItemEvent(Base):
    __tablename__ = "item_events"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    event_type = Column(String(50), nullable=False)
    quantity_change = Column(Integer, nullable=False, default=0)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)
    on_hand_delta = Column(Integer, nullable=True)
    on_order_delta = Column(Integer, nullable=True)
    committed_delta = Column(Integer, nullable=True)
    backordered_delta = Column(Integer, nullable=True)
    cost_consumed = Column(Numeric(14, 2), nullable=True)
    event_metadata = Column(Text, nullable=True)
    event_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    item = relationship("Item")

    __table_args__ = (
        Index("idx_item_event_reference", "reference_type", "reference_id"),
        Index("idx_item_event_item_date", "item_id", "event_date"),
    )

    @property
    def has_effect(self) -> bool:
        return any(
            value is not None
            for value in (self.on_hand_delta, self.on_order_delta, self.committed_delta, self.backordered_delta)
        )

    @property
    def effect(self) -> AppliedEffect | None:
        """The recorded effect, or None for events written before effects were stored."""
        if not self.has_effect:
            return None
        return AppliedEffect(
            on_hand=self.on_hand_delta or 0,
            on_order=self.on_order_delta or 0,
            committed=self.committed_delta or 0,
            backordered=self.backordered_delta or 0,
            cost=Decimal(self.cost_consumed or 0),
        )


class OrderEvent(Base):
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True)
    order_type = Column(String(50), nullable=False)
    order_id = Column(Integer, nullable=False)
    event_type = Column(String(50), nullable=False)
    previous_state = Column(Text, nullable=True)
    new_state = Column(Text, nullable=True)
    event_metadata = Column(Text, nullable=True)
    event_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("idx_order_event_order", "order_type", "order_id"),)


class DocumentSequence(Base):
    __tablename__ = "document_sequences"

    prefix = Column(String(20), primary_key=True)
    current_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
