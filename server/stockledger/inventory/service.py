from datetime import datetime
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.errors import NotFoundError, ValidationFailure
from stockledger.events import dispatch
from stockledger.events.types import InventoryAdjusted
from stockledger.models import (
    AuditInfo,
    InventoryAdjustment,
    InventoryAdjustmentLine,
    Item,
    Location,
    SalesOrder,
    SalesOrderLine,
    Vendor,
)
from stockledger.utils.money import quantize_money
from stockledger.utils.numbering import next_document_number


logger = logging.getLogger(__name__)

OPENING_BALANCE_REASON = "Opening balance"


def get_item(db: Session, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise NotFoundError("Item", item_id)
    return item


def create_item(db: Session, payload: dict, created_by: str | None = None) -> Item:
    """Create a catalog item; an opening quantity is booked as an adjustment."""
    opening_quantity = int(payload.pop("quantity_on_hand", 0) or 0)
    opening_cost = payload.pop("unit_cost", None)
    if payload.get("sku") and db.query(Item).filter(Item.sku == payload["sku"]).first():
        raise ValidationFailure(f"Item with SKU {payload['sku']} already exists.")

    item = Item(
        **payload,
        quantity_on_hand=0,
        quantity_on_order=0,
        quantity_committed=0,
        quantity_backordered=0,
        quantity_available=0,
        audit=AuditInfo.now(created_by or settings.DEFAULT_ACTOR),
    )
    db.add(item)
    db.flush()

    if opening_quantity:
        create_inventory_adjustment(
            db,
            {
                "reason": OPENING_BALANCE_REASON,
                "lines": [{"item_id": item.id, "quantity_change": opening_quantity, "unit_cost": opening_cost}],
            },
            created_by=created_by,
        )
    return item


def create_vendor(db: Session, payload: dict) -> Vendor:
    vendor = Vendor(**payload)
    db.add(vendor)
    db.flush()
    return vendor


def create_location(db: Session, payload: dict) -> Location:
    if db.query(Location).filter(Location.code == payload["code"]).first():
        raise ValidationFailure(f"Location {payload['code']} already exists.")
    location = Location(**payload)
    db.add(location)
    db.flush()
    return location


def create_inventory_adjustment(db: Session, payload: dict, created_by: str | None = None) -> InventoryAdjustment:
    lines_payload = payload.get("lines") or []
    if not lines_payload:
        raise ValidationFailure("Adjustment must include at least one line.")
    location_id = payload.get("location_id")
    if location_id is not None and not db.get(Location, location_id):
        raise NotFoundError("Location", location_id)

    lines = []
    for line_payload in lines_payload:
        item = db.get(Item, line_payload["item_id"])
        if not item:
            raise NotFoundError("Item", line_payload["item_id"])
        quantity_change = int(line_payload["quantity_change"])
        if quantity_change == 0:
            raise ValidationFailure("Adjustment quantity cannot be zero.")
        unit_cost = line_payload.get("unit_cost")
        lines.append(
            InventoryAdjustmentLine(
                item_id=item.id,
                quantity_change=quantity_change,
                unit_cost=quantize_money(unit_cost) if unit_cost is not None else None,
                notes=line_payload.get("notes"),
            )
        )

    adjustment = InventoryAdjustment(
        adjustment_number=next_document_number(db, InventoryAdjustment, InventoryAdjustment.adjustment_number, "ADJ"),
        location_id=location_id,
        reason=payload.get("reason") or "Adjustment",
        memo=payload.get("memo"),
        status="DRAFT",
        lines=lines,
        audit=AuditInfo.now(created_by or settings.DEFAULT_ACTOR),
    )
    db.add(adjustment)
    db.flush()

    for line in adjustment.lines:
        dispatch(db, InventoryAdjusted(adjustment_line=line))
    adjustment.status = "POSTED"
    adjustment.posted_at = datetime.utcnow()
    db.flush()
    logger.info("Inventory adjustment posted: %s lines=%s", adjustment.adjustment_number, len(adjustment.lines))
    return adjustment


def get_item_quantities(db: Session, item_id: int) -> dict:
    item = get_item(db, item_id)
    return {
        "item_id": item.id,
        "sku": item.sku,
        "name": item.name,
        "quantity_on_hand": item.quantity_on_hand,
        "quantity_on_order": item.quantity_on_order,
        "quantity_committed": item.quantity_committed,
        "quantity_backordered": item.quantity_backordered,
        "quantity_available": item.quantity_available,
        "projected_available": item.projected_available,
    }


def get_backordered_items(db: Session) -> list[dict]:
    """Items with open backorders and the sales order lines waiting on them."""
    items = (
        db.query(Item)
        .filter(Item.quantity_backordered > 0)
        .order_by(Item.quantity_backordered.desc(), Item.id.asc())
        .all()
    )
    rows = []
    for item in items:
        waiting = (
            db.query(SalesOrderLine, SalesOrder)
            .join(SalesOrder, SalesOrder.id == SalesOrderLine.sales_order_id)
            .filter(SalesOrderLine.item_id == item.id, SalesOrderLine.quantity_backordered > 0)
            .order_by(SalesOrder.order_date.asc(), SalesOrder.id.asc())
            .all()
        )
        rows.append(
            {
                "item_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "quantity_backordered": item.quantity_backordered,
                "quantity_on_order": item.quantity_on_order,
                "quantity_available": item.quantity_available,
                "orders": [
                    {
                        "sales_order_id": so.id,
                        "order_number": so.order_number,
                        "customer_name": so.customer_name,
                        "line_id": line.id,
                        "quantity_backordered": line.quantity_backordered,
                    }
                    for line, so in waiting
                ],
            }
        )
    return rows


def total_backordered_value(db: Session) -> Decimal:
    total = Decimal("0")
    for line in db.query(SalesOrderLine).filter(SalesOrderLine.quantity_backordered > 0).all():
        total += Decimal(line.quantity_backordered) * Decimal(line.unit_price or 0)
    return quantize_money(total)
