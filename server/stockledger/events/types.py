"""Inventory domain events.

Each event is an immutable value carrying the aggregate it concerns. The
``InventoryEvent`` union is closed: the dispatcher refuses to import if a
member has no handler.
"""
from dataclasses import dataclass
from typing import Union, get_args

from stockledger.models import (
    InventoryAdjustmentLine,
    ItemFulfillment,
    ItemReceiptLine,
    PurchaseOrder,
    SalesOrder,
    SalesOrderLine,
)


@dataclass(frozen=True)
class PurchaseOrderCreated:
    purchase_order: PurchaseOrder


@dataclass(frozen=True)
class PurchaseOrderUpdated:
    purchase_order: PurchaseOrder
    previous_state: dict


@dataclass(frozen=True)
class PurchaseOrderDeleted:
    order_id: int
    order_state: dict


@dataclass(frozen=True)
class PurchaseOrderClosed:
    purchase_order: PurchaseOrder
    reason: str | None = None
    final_status: str = "CLOSED"


@dataclass(frozen=True)
class ItemReceived:
    receipt_line: ItemReceiptLine


@dataclass(frozen=True)
class SalesOrderCreated:
    sales_order: SalesOrder


@dataclass(frozen=True)
class SalesOrderUpdated:
    sales_order: SalesOrder
    previous_state: dict


@dataclass(frozen=True)
class SalesOrderDeleted:
    order_id: int
    order_state: dict


@dataclass(frozen=True)
class SalesOrderCancelled:
    sales_order: SalesOrder
    reason: str | None = None


@dataclass(frozen=True)
class SalesOrderClosed:
    sales_order: SalesOrder


@dataclass(frozen=True)
class ItemFulfilled:
    sales_order_line: SalesOrderLine
    quantity: int
    location_id: int | None = None
    fulfillment_id: int | None = None


@dataclass(frozen=True)
class FulfillmentCreated:
    fulfillment: ItemFulfillment


@dataclass(frozen=True)
class ItemShipped:
    fulfillment: ItemFulfillment
    tracking_number: str | None = None
    ship_method: str | None = None


@dataclass(frozen=True)
class InventoryAdjusted:
    adjustment_line: InventoryAdjustmentLine


InventoryEvent = Union[
    PurchaseOrderCreated,
    PurchaseOrderUpdated,
    PurchaseOrderDeleted,
    PurchaseOrderClosed,
    ItemReceived,
    SalesOrderCreated,
    SalesOrderUpdated,
    SalesOrderDeleted,
    SalesOrderCancelled,
    SalesOrderClosed,
    ItemFulfilled,
    FulfillmentCreated,
    ItemShipped,
    InventoryAdjusted,
]

EVENT_TYPES: tuple[type, ...] = get_args(InventoryEvent)
