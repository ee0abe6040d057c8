import logging

from sqlalchemy.orm import Session

from stockledger.events import handlers, types


logger = logging.getLogger(__name__)

HANDLERS = {
    types.PurchaseOrderCreated: handlers.handle_purchase_order_created,
    types.PurchaseOrderUpdated: handlers.handle_purchase_order_updated,
    types.PurchaseOrderDeleted: handlers.handle_purchase_order_deleted,
    types.PurchaseOrderClosed: handlers.handle_purchase_order_closed,
    types.ItemReceived: handlers.handle_item_received,
    types.SalesOrderCreated: handlers.handle_sales_order_created,
    types.SalesOrderUpdated: handlers.handle_sales_order_updated,
    types.SalesOrderDeleted: handlers.handle_sales_order_deleted,
    types.SalesOrderCancelled: handlers.handle_sales_order_cancelled,
    types.SalesOrderClosed: handlers.handle_sales_order_closed,
    types.ItemFulfilled: handlers.handle_item_fulfilled,
    types.FulfillmentCreated: handlers.handle_fulfillment_created,
    types.ItemShipped: handlers.handle_item_shipped,
    types.InventoryAdjusted: handlers.handle_inventory_adjusted,
}


def missing_handlers(table: dict | None = None) -> list[str]:
    table = HANDLERS if table is None else table
    return [event_type.__name__ for event_type in types.EVENT_TYPES if event_type not in table]


_missing = missing_handlers()
if _missing:
    raise RuntimeError(f"No handler registered for inventory events: {', '.join(_missing)}")


def dispatch(db: Session, event: types.InventoryEvent):
    handler = HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"{type(event).__name__} is not an inventory event.")
    logger.debug("Dispatching %s", type(event).__name__)
    return handler(db, event)
