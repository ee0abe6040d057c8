from datetime import date
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.errors import NotFoundError, ValidationFailure
from stockledger.events import dispatch
from stockledger.events.reversal import (
    SALES_ORDER,
    SALES_ORDER_TRANSITIONS,
    ensure_sales_order_editable,
    ensure_transition,
)
from stockledger.events.snapshots import sales_order_snapshot
from stockledger.events.store import append_order_event
from stockledger.events.types import (
    SalesOrderCancelled,
    SalesOrderClosed,
    SalesOrderCreated,
    SalesOrderDeleted,
    SalesOrderUpdated,
)
from stockledger.models import AuditInfo, Item, SalesOrder, SalesOrderLine
from stockledger.utils.money import quantize_money
from stockledger.utils.numbering import next_document_number


logger = logging.getLogger(__name__)


def _next_so_number(db: Session) -> str:
    return next_document_number(db, SalesOrder, SalesOrder.order_number, "SO")


def so_total(so: SalesOrder) -> Decimal:
    return quantize_money(
        sum((Decimal(line.quantity_ordered) * Decimal(line.unit_price or 0) for line in so.lines), Decimal("0"))
    )


def get_sales_order(db: Session, so_id: int) -> SalesOrder:
    so = db.get(SalesOrder, so_id)
    if not so:
        raise NotFoundError("Sales order", so_id)
    return so


def _build_so_line(db: Session, payload: dict) -> SalesOrderLine:
    item = db.get(Item, payload["item_id"])
    if not item:
        raise NotFoundError("Item", payload["item_id"])
    if not item.is_active:
        raise ValidationFailure(f"Item {item.name} is inactive.")
    quantity = int(payload["quantity"])
    if quantity <= 0:
        raise ValidationFailure("All line item quantities must be greater than zero.")
    return SalesOrderLine(
        item_id=item.id,
        quantity_ordered=quantity,
        quantity_committed=0,
        quantity_backordered=0,
        quantity_fulfilled=0,
        unit_price=quantize_money(payload.get("unit_price")),
    )


def create_sales_order(db: Session, payload: dict, created_by: str | None = None) -> SalesOrder:
    lines_payload = payload.pop("lines")
    if not lines_payload:
        raise ValidationFailure("Sales order must include at least one line item.")
    if not payload.get("order_number"):
        payload["order_number"] = _next_so_number(db)
    if not payload.get("order_date"):
        payload["order_date"] = date.today()
    payload.setdefault("status", "PENDING_FULFILLMENT")
    if payload["status"] not in {"DRAFT", "PENDING_FULFILLMENT"}:
        raise ValidationFailure("New sales orders must start as DRAFT or PENDING_FULFILLMENT.")

    so = SalesOrder(**payload, audit=AuditInfo.now(created_by or settings.DEFAULT_ACTOR))
    so.lines = [_build_so_line(db, line) for line in lines_payload]
    db.add(so)
    db.flush()

    dispatch(db, SalesOrderCreated(sales_order=so))
    logger.info("Sales order created: %s lines=%s", so.order_number, len(so.lines))
    return so


def update_sales_order(db: Session, so: SalesOrder, payload: dict) -> SalesOrder:
    ensure_sales_order_editable(so)
    previous_state = sales_order_snapshot(so)

    lines_payload = payload.pop("lines", None)
    payload.pop("status", None)
    for key, value in payload.items():
        setattr(so, key, value)

    if lines_payload is not None:
        if not lines_payload:
            raise ValidationFailure("Sales order must include at least one line item.")
        new_lines = [_build_so_line(db, line) for line in lines_payload]
        so.lines.clear()
        db.flush()
        so.lines = new_lines
    db.flush()

    dispatch(db, SalesOrderUpdated(sales_order=so, previous_state=previous_state))
    return so


def delete_sales_order(db: Session, so: SalesOrder) -> None:
    ensure_sales_order_editable(so)
    order_id = so.id
    order_state = sales_order_snapshot(so)
    db.delete(so)
    db.flush()
    dispatch(db, SalesOrderDeleted(order_id=order_id, order_state=order_state))
    logger.info("Sales order deleted: %s", order_state["order_number"])


def approve_sales_order(db: Session, so: SalesOrder) -> SalesOrder:
    ensure_transition("Sales order", so.status, "PENDING_FULFILLMENT", SALES_ORDER_TRANSITIONS)
    previous_state = sales_order_snapshot(so)
    so.status = "PENDING_FULFILLMENT"
    append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="approved",
        previous_state=previous_state,
        new_state=sales_order_snapshot(so),
    )
    return so


def cancel_sales_order(db: Session, so: SalesOrder, reason: str | None = None) -> SalesOrder:
    ensure_transition("Sales order", so.status, "CANCELLED", SALES_ORDER_TRANSITIONS)
    dispatch(db, SalesOrderCancelled(sales_order=so, reason=reason))
    logger.info("Sales order cancelled: %s", so.order_number)
    return so


def close_sales_order(db: Session, so: SalesOrder) -> SalesOrder:
    ensure_transition("Sales order", so.status, "CLOSED", SALES_ORDER_TRANSITIONS)
    dispatch(db, SalesOrderClosed(sales_order=so))
    return so
