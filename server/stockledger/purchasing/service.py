from datetime import date, datetime
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.errors import NotFoundError, OrderStateError, ValidationFailure
from stockledger.events import dispatch
from stockledger.events.reversal import (
    PURCHASE_ORDER,
    PURCHASE_ORDER_TRANSITIONS,
    ensure_purchase_order_editable,
    ensure_transition,
)
from stockledger.events.snapshots import purchase_order_snapshot
from stockledger.events.store import append_order_event
from stockledger.events.types import (
    ItemReceived,
    PurchaseOrderClosed,
    PurchaseOrderCreated,
    PurchaseOrderDeleted,
    PurchaseOrderUpdated,
)
from stockledger.models import (
    AuditInfo,
    Item,
    ItemReceipt,
    ItemReceiptLine,
    Location,
    PurchaseOrder,
    PurchaseOrderLine,
    Vendor,
)
from stockledger.utils.money import quantize_money
from stockledger.utils.numbering import next_document_number


logger = logging.getLogger(__name__)

RECEIVABLE_STATUSES = {"PENDING_RECEIPT", "PARTIALLY_RECEIVED"}


def _next_po_number(db: Session) -> str:
    return next_document_number(db, PurchaseOrder, PurchaseOrder.order_number, "PO")


def po_total(po: PurchaseOrder) -> Decimal:
    return quantize_money(sum((Decimal(line.quantity_ordered) * Decimal(line.rate or 0) for line in po.lines), Decimal("0")))


def get_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = db.get(PurchaseOrder, po_id)
    if not po:
        raise NotFoundError("Purchase order", po_id)
    return po


def _validate_vendor(db: Session, vendor_id: int, currency: str | None, exchange_rate) -> str:
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise NotFoundError("Vendor", vendor_id)
    if not vendor.is_active:
        raise ValidationFailure(f"Vendor {vendor.name} is inactive.")
    currency = currency or vendor.default_currency
    if currency != vendor.default_currency and not exchange_rate:
        raise ValidationFailure(
            f"Exchange rate is required for {currency} orders from a {vendor.default_currency} vendor."
        )
    return currency


def _validate_location(db: Session, location_id: int | None) -> None:
    if location_id is None:
        return
    location = db.get(Location, location_id)
    if not location:
        raise NotFoundError("Location", location_id)
    if not location.is_active:
        raise ValidationFailure(f"Location {location.code} is inactive.")


def _build_po_line(db: Session, payload: dict) -> PurchaseOrderLine:
    item = db.get(Item, payload["item_id"])
    if not item:
        raise NotFoundError("Item", payload["item_id"])
    quantity = int(payload["quantity"])
    if quantity <= 0:
        raise ValidationFailure("All line item quantities must be greater than zero.")
    return PurchaseOrderLine(
        item_id=item.id,
        quantity_ordered=quantity,
        quantity_received=0,
        rate=quantize_money(payload.get("rate")) or Decimal("0.00"),
    )


def create_purchase_order(db: Session, payload: dict, created_by: str | None = None) -> PurchaseOrder:
    lines_payload = payload.pop("lines")
    if not lines_payload:
        raise ValidationFailure("Purchase order must include at least one line item.")
    payload["currency"] = _validate_vendor(db, payload["vendor_id"], payload.get("currency"), payload.get("exchange_rate"))
    _validate_location(db, payload.get("location_id"))
    if not payload.get("order_number"):
        payload["order_number"] = _next_po_number(db)
    if not payload.get("order_date"):
        payload["order_date"] = date.today()
    payload.setdefault("status", "PENDING_APPROVAL")

    po = PurchaseOrder(**payload, audit=AuditInfo.now(created_by or settings.DEFAULT_ACTOR))
    po.lines = [_build_po_line(db, line) for line in lines_payload]
    db.add(po)
    db.flush()

    dispatch(db, PurchaseOrderCreated(purchase_order=po))
    logger.info("Purchase order created: %s lines=%s", po.order_number, len(po.lines))
    return po


def update_purchase_order(db: Session, po: PurchaseOrder, payload: dict) -> PurchaseOrder:
    ensure_purchase_order_editable(po)
    previous_state = purchase_order_snapshot(po)

    lines_payload = payload.pop("lines", None)
    vendor_id = payload.get("vendor_id", po.vendor_id)
    if any(key in payload for key in ("vendor_id", "currency", "exchange_rate")):
        payload["currency"] = _validate_vendor(
            db,
            vendor_id,
            payload.get("currency"),
            payload.get("exchange_rate", po.exchange_rate),
        )
    if "location_id" in payload:
        _validate_location(db, payload["location_id"])
    for key, value in payload.items():
        setattr(po, key, value)

    if lines_payload is not None:
        if not lines_payload:
            raise ValidationFailure("Purchase order must include at least one line item.")
        new_lines = [_build_po_line(db, line) for line in lines_payload]
        po.lines.clear()
        db.flush()
        po.lines = new_lines
    db.flush()

    dispatch(db, PurchaseOrderUpdated(purchase_order=po, previous_state=previous_state))
    return po


def delete_purchase_order(db: Session, po: PurchaseOrder) -> None:
    ensure_purchase_order_editable(po)
    order_id = po.id
    order_state = purchase_order_snapshot(po)
    db.delete(po)
    db.flush()
    dispatch(db, PurchaseOrderDeleted(order_id=order_id, order_state=order_state))
    logger.info("Purchase order deleted: %s", order_state["order_number"])


def approve_purchase_order(db: Session, po: PurchaseOrder) -> PurchaseOrder:
    ensure_transition("Purchase order", po.status, "PENDING_RECEIPT", PURCHASE_ORDER_TRANSITIONS)
    previous_state = purchase_order_snapshot(po)
    po.status = "PENDING_RECEIPT"
    po.approved_at = datetime.utcnow()
    append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        event_type="approved",
        previous_state=previous_state,
        new_state=purchase_order_snapshot(po),
    )
    return po


def close_purchase_order(db: Session, po: PurchaseOrder, reason: str | None = None) -> PurchaseOrder:
    ensure_transition("Purchase order", po.status, "CLOSED", PURCHASE_ORDER_TRANSITIONS)
    dispatch(db, PurchaseOrderClosed(purchase_order=po, reason=reason))
    return po


def cancel_purchase_order(db: Session, po: PurchaseOrder, reason: str | None = None) -> PurchaseOrder:
    ensure_transition("Purchase order", po.status, "CANCELLED", PURCHASE_ORDER_TRANSITIONS)
    dispatch(db, PurchaseOrderClosed(purchase_order=po, reason=reason, final_status="CANCELLED"))
    return po


def receive_purchase_order(db: Session, po: PurchaseOrder, payload: dict) -> ItemReceipt:
    if po.status == "PENDING_APPROVAL":
        raise OrderStateError(f"Purchase order {po.order_number} must be approved before receiving.")
    if po.status not in RECEIVABLE_STATUSES:
        raise OrderStateError(f"Purchase order {po.order_number} is {po.status} and cannot be received.")
    lines_payload = payload.get("lines") or []
    if not lines_payload:
        raise ValidationFailure("Receipt must include at least one line.")
    location_id = payload.get("location_id", po.location_id)
    _validate_location(db, location_id)

    requested: dict[int, int] = {}
    receipt_lines = []
    for line_payload in lines_payload:
        line = next((line for line in po.lines if line.id == line_payload["line_id"]), None)
        if not line:
            raise NotFoundError("Purchase order line", line_payload["line_id"])
        if line.closed:
            raise OrderStateError(f"Purchase order line {line.id} is closed.")
        quantity = int(line_payload["quantity"])
        if quantity <= 0:
            raise ValidationFailure("Received quantity must be greater than zero.")
        requested[line.id] = requested.get(line.id, 0) + quantity
        if requested[line.id] > line.quantity_outstanding:
            raise ValidationFailure(
                f"Cannot receive {requested[line.id]} on line {line.id}; only {line.quantity_outstanding} outstanding."
            )
        unit_cost = line_payload.get("unit_cost")
        receipt_lines.append(
            ItemReceiptLine(
                purchase_order_line=line,
                item_id=line.item_id,
                quantity_received=quantity,
                unit_cost=quantize_money(unit_cost if unit_cost is not None else line.rate) or Decimal("0.00"),
            )
        )

    receipt = ItemReceipt(
        receipt_number=next_document_number(db, ItemReceipt, ItemReceipt.receipt_number, "IR"),
        purchase_order=po,
        location_id=location_id,
        receipt_date=payload.get("receipt_date") or datetime.utcnow(),
        notes=payload.get("notes"),
        lines=receipt_lines,
    )
    db.add(receipt)
    db.flush()

    previous_state = purchase_order_snapshot(po)
    for receipt_line in receipt.lines:
        dispatch(db, ItemReceived(receipt_line=receipt_line))
    append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        event_type="received",
        previous_state=previous_state,
        new_state=purchase_order_snapshot(po),
        metadata={"receipt_id": receipt.id, "receipt_number": receipt.receipt_number},
    )
    logger.info("Purchase order %s received via %s", po.order_number, receipt.receipt_number)
    return receipt
