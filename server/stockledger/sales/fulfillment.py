from datetime import datetime
import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.errors import InsufficientInventoryError, NotFoundError, OrderStateError, ValidationFailure
from stockledger.events import dispatch
from stockledger.events.reversal import FULFILLMENT_TRANSITIONS, ensure_transition
from stockledger.events.types import FulfillmentCreated, ItemShipped
from stockledger.inventory.projection import get_item_for_update
from stockledger.models import AuditInfo, ItemFulfillment, ItemFulfillmentLine, Location, SalesOrder
from stockledger.utils.numbering import next_document_number


logger = logging.getLogger(__name__)

FULFILLABLE_STATUSES = {"PENDING_FULFILLMENT", "PARTIALLY_FULFILLED"}


def get_fulfillment(db: Session, fulfillment_id: int) -> ItemFulfillment:
    fulfillment = db.get(ItemFulfillment, fulfillment_id)
    if not fulfillment:
        raise NotFoundError("Item fulfillment", fulfillment_id)
    return fulfillment


def fulfill_sales_order(db: Session, so: SalesOrder, payload: dict, created_by: str | None = None) -> ItemFulfillment:
    if so.status not in FULFILLABLE_STATUSES:
        raise OrderStateError(f"Sales order {so.order_number} is {so.status} and cannot be fulfilled.")
    lines_payload = payload.get("lines") or []
    if not lines_payload:
        raise ValidationFailure("Fulfillment must include at least one line.")
    location_id = payload.get("location_id")
    if location_id is not None and not db.get(Location, location_id):
        raise NotFoundError("Location", location_id)

    requested: dict[int, int] = {}
    needed_by_item: dict[int, int] = {}
    fulfillment_lines = []
    for line_payload in lines_payload:
        line = next((line for line in so.lines if line.id == line_payload["line_id"]), None)
        if not line:
            raise NotFoundError("Sales order line", line_payload["line_id"])
        quantity = int(line_payload["quantity"])
        if quantity <= 0:
            raise ValidationFailure("Fulfilled quantity must be greater than zero.")
        requested[line.id] = requested.get(line.id, 0) + quantity
        if requested[line.id] > line.quantity_remaining:
            raise ValidationFailure(
                f"Cannot fulfill {requested[line.id]} on line {line.id}; only {line.quantity_remaining} remaining."
            )
        needed_by_item[line.item_id] = needed_by_item.get(line.item_id, 0) + quantity
        fulfillment_lines.append(
            ItemFulfillmentLine(sales_order_line=line, item_id=line.item_id, quantity_fulfilled=quantity)
        )

    if not settings.ALLOW_NEGATIVE_ON_HAND:
        for item_id, quantity in needed_by_item.items():
            item = get_item_for_update(db, item_id)
            if (item.quantity_on_hand or 0) < quantity:
                raise InsufficientInventoryError(item.name, quantity, item.quantity_on_hand or 0)

    fulfillment = ItemFulfillment(
        fulfillment_number=next_document_number(db, ItemFulfillment, ItemFulfillment.fulfillment_number, "IF"),
        sales_order=so,
        location_id=location_id,
        status="PICKED",
        fulfillment_date=payload.get("fulfillment_date") or datetime.utcnow(),
        ship_method=payload.get("ship_method"),
        notes=payload.get("notes"),
        lines=fulfillment_lines,
        audit=AuditInfo.now(created_by or settings.DEFAULT_ACTOR),
    )
    db.add(fulfillment)
    db.flush()

    dispatch(db, FulfillmentCreated(fulfillment=fulfillment))
    logger.info(
        "Fulfillment %s for %s cost_of_goods_sold=%s",
        fulfillment.fulfillment_number,
        so.order_number,
        fulfillment.cost_of_goods_sold,
    )
    return fulfillment


def pack_fulfillment(fulfillment: ItemFulfillment) -> ItemFulfillment:
    ensure_transition("Fulfillment", fulfillment.status, "PACKED", FULFILLMENT_TRANSITIONS)
    fulfillment.status = "PACKED"
    return fulfillment


def ship_fulfillment(db: Session, fulfillment: ItemFulfillment, payload: dict | None = None) -> ItemFulfillment:
    payload = payload or {}
    ensure_transition("Fulfillment", fulfillment.status, "SHIPPED", FULFILLMENT_TRANSITIONS)
    dispatch(
        db,
        ItemShipped(
            fulfillment=fulfillment,
            tracking_number=payload.get("tracking_number"),
            ship_method=payload.get("ship_method"),
        ),
    )
    return fulfillment
