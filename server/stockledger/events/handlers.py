"""One handler per inventory event.

Handlers lock the items they touch, apply the event's effect through the
quantity projection and append the matching item and order events. They never
commit; the calling command owns the transaction.
"""
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.costing.service import (
    FifoResult,
    consume_fifo,
    create_cost_layer,
    get_average_cost,
    link_consumptions,
)
from stockledger.errors import InsufficientInventoryError
from stockledger.events import types
from stockledger.events.reversal import (
    ITEM_FULFILLMENT,
    PURCHASE_ORDER,
    SALES_ORDER,
    net_order_effect,
    reverse_order_effects,
)
from stockledger.events.snapshots import (
    fulfillment_snapshot,
    purchase_order_snapshot,
    sales_order_snapshot,
    snapshot_lines,
)
from stockledger.events.store import append_item_event, append_order_event, find_reference_events
from stockledger.inventory.effects import NO_EFFECT, AppliedEffect
from stockledger.inventory.projection import apply_effect, get_item_for_update, legacy_effect
from stockledger.models import Item, PurchaseOrder, SalesOrder
from stockledger.utils.money import quantize_money


logger = logging.getLogger(__name__)


def _draws_metadata(fifo: FifoResult) -> list[dict]:
    return [
        {"layer_id": draw.layer_id, "quantity": draw.consumed, "unit_cost": draw.unit_cost}
        for draw in fifo.draws
    ]


# Purchase orders


def _place_purchase_lines(db: Session, po: PurchaseOrder, event_type: str) -> None:
    for line in po.lines:
        item = get_item_for_update(db, line.item_id)
        applied = apply_effect(item, AppliedEffect(on_order=line.quantity_ordered))
        append_item_event(
            db,
            item=item,
            event_type=event_type,
            quantity_change=line.quantity_ordered,
            reference_type=PURCHASE_ORDER,
            reference_id=po.id,
            effect=applied,
            metadata={"line_id": line.id, "quantity_ordered": line.quantity_ordered, "rate": line.rate},
        )


def handle_purchase_order_created(db: Session, event: types.PurchaseOrderCreated):
    po = event.purchase_order
    _place_purchase_lines(db, po, "purchase_order_created")
    return append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        event_type="created",
        new_state=purchase_order_snapshot(po),
    )


def handle_purchase_order_updated(db: Session, event: types.PurchaseOrderUpdated):
    po = event.purchase_order
    reverse_order_effects(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        previous_state=event.previous_state,
        event_type="purchase_order_updated_reversal",
    )
    _place_purchase_lines(db, po, "purchase_order_updated")
    return append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        event_type="updated",
        previous_state=event.previous_state,
        new_state=purchase_order_snapshot(po),
    )


def handle_purchase_order_deleted(db: Session, event: types.PurchaseOrderDeleted):
    reverse_order_effects(
        db,
        order_type=PURCHASE_ORDER,
        order_id=event.order_id,
        previous_state=event.order_state,
        event_type="purchase_order_deleted",
    )
    return append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=event.order_id,
        event_type="deleted",
        previous_state=event.order_state,
    )


def handle_purchase_order_closed(db: Session, event: types.PurchaseOrderClosed):
    """Release whatever is still on order; receipts already took their share."""
    po = event.purchase_order
    previous_state = purchase_order_snapshot(po)
    for item_id in dict.fromkeys(line.item_id for line in po.lines):
        item = get_item_for_update(db, item_id)
        outstanding = sum(
            (event_row.effect or legacy_effect(event_row)).on_order
            for event_row in find_reference_events(
                db, reference_type=PURCHASE_ORDER, reference_id=po.id, item_id=item_id
            )
        )
        if outstanding <= 0:
            continue
        applied = apply_effect(item, AppliedEffect(on_order=-outstanding))
        append_item_event(
            db,
            item=item,
            event_type="purchase_order_closed",
            quantity_change=applied.on_order,
            reference_type=PURCHASE_ORDER,
            reference_id=po.id,
            effect=applied,
            metadata={"quantity_released": -applied.on_order, "reason": event.reason},
        )
    for line in po.lines:
        line.closed = True
    po.status = event.final_status
    po.closed_at = datetime.utcnow()
    return append_order_event(
        db,
        order_type=PURCHASE_ORDER,
        order_id=po.id,
        event_type=event.final_status.lower(),
        previous_state=previous_state,
        new_state=purchase_order_snapshot(po),
        metadata={"reason": event.reason} if event.reason else None,
    )


def _refresh_purchase_order_status(po: PurchaseOrder) -> None:
    if all((line.quantity_received or 0) >= line.quantity_ordered for line in po.lines):
        po.status = "RECEIVED"
    elif any((line.quantity_received or 0) > 0 for line in po.lines):
        po.status = "PARTIALLY_RECEIVED"


def handle_item_received(db: Session, event: types.ItemReceived):
    receipt_line = event.receipt_line
    receipt = receipt_line.item_receipt
    po_line = receipt_line.purchase_order_line
    quantity = receipt_line.quantity_received

    item = get_item_for_update(db, receipt_line.item_id)
    applied = apply_effect(item, AppliedEffect(on_hand=quantity, on_order=-quantity))
    po_line.quantity_received = (po_line.quantity_received or 0) + quantity

    layer = create_cost_layer(
        db,
        item=item,
        quantity=quantity,
        unit_cost=receipt_line.unit_cost,
        layer_type="RECEIPT",
        location_id=receipt.location_id,
        receipt_line_id=receipt_line.id,
        source_type="item_receipt",
        source_id=receipt.id,
        receipt_date=receipt.receipt_date,
    )
    _refresh_purchase_order_status(po_line.purchase_order)

    return append_item_event(
        db,
        item=item,
        event_type="item_received",
        quantity_change=quantity,
        reference_type=PURCHASE_ORDER,
        reference_id=po_line.purchase_order_id,
        effect=applied,
        metadata={
            "receipt_id": receipt.id,
            "receipt_line_id": receipt_line.id,
            "cost_layer_id": layer.id,
            "unit_cost": layer.unit_cost,
        },
    )


# Sales orders


def ensure_backorders_allowed(db: Session, so: SalesOrder, released: dict[int, int] | None = None) -> None:
    """Reject a sales order that cannot be fully committed when backorders are off.

    ``released`` is the commitment the order already holds per item, which an
    update gives back before committing again.
    """
    if settings.ALLOW_BACKORDERS:
        return
    needed: dict[int, int] = {}
    for line in so.lines:
        needed[line.item_id] = needed.get(line.item_id, 0) + line.quantity_ordered
    for item_id, quantity in needed.items():
        item = get_item_for_update(db, item_id)
        available = max(0, item.quantity_available or 0) + (released or {}).get(item_id, 0)
        if quantity > available:
            raise InsufficientInventoryError(item.name, quantity, available)


def _commit_sales_lines(db: Session, so: SalesOrder, event_type: str) -> None:
    for line in so.lines:
        item = get_item_for_update(db, line.item_id)
        committed = min(line.quantity_ordered, max(0, item.quantity_available or 0))
        backordered = line.quantity_ordered - committed
        applied = apply_effect(item, AppliedEffect(committed=committed, backordered=backordered))
        line.quantity_committed = committed
        line.quantity_backordered = backordered
        append_item_event(
            db,
            item=item,
            event_type=event_type,
            quantity_change=-line.quantity_ordered,
            reference_type=SALES_ORDER,
            reference_id=so.id,
            effect=applied,
            metadata={
                "line_id": line.id,
                "quantity_committed": committed,
                "quantity_backordered": backordered,
            },
        )
        if backordered:
            logger.info(
                "Sales order %s backordered %s of item %s",
                so.order_number,
                backordered,
                item.id,
            )


def handle_sales_order_created(db: Session, event: types.SalesOrderCreated):
    so = event.sales_order
    ensure_backorders_allowed(db, so)
    _commit_sales_lines(db, so, "sales_order_created")
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="created",
        new_state=sales_order_snapshot(so),
    )


def _held_commitments(db: Session, so: SalesOrder, previous_state: dict | None) -> dict[int, int]:
    held: dict[int, int] = {}
    for line in snapshot_lines(previous_state):
        if line["item_id"] in held:
            continue
        effect = net_order_effect(
            db,
            order_type=SALES_ORDER,
            order_id=so.id,
            item_id=line["item_id"],
            fallback_quantity=line["quantity_ordered"],
        )
        held[line["item_id"]] = effect.committed
    return held


def handle_sales_order_updated(db: Session, event: types.SalesOrderUpdated):
    so = event.sales_order
    if not settings.ALLOW_BACKORDERS:
        ensure_backorders_allowed(db, so, _held_commitments(db, so, event.previous_state))

    reverse_order_effects(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        previous_state=event.previous_state,
        event_type="sales_order_updated_reversal",
    )
    _commit_sales_lines(db, so, "sales_order_updated")
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="updated",
        previous_state=event.previous_state,
        new_state=sales_order_snapshot(so),
    )


def handle_sales_order_deleted(db: Session, event: types.SalesOrderDeleted):
    reverse_order_effects(
        db,
        order_type=SALES_ORDER,
        order_id=event.order_id,
        previous_state=event.order_state,
        event_type="sales_order_deleted",
    )
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=event.order_id,
        event_type="deleted",
        previous_state=event.order_state,
    )


def handle_sales_order_cancelled(db: Session, event: types.SalesOrderCancelled):
    so = event.sales_order
    previous_state = sales_order_snapshot(so)
    reverse_order_effects(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        previous_state=previous_state,
        event_type="sales_order_cancelled",
        metadata={"reason": event.reason} if event.reason else None,
    )
    for line in so.lines:
        line.quantity_committed = 0
        line.quantity_backordered = 0
    so.status = "CANCELLED"
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="cancelled",
        previous_state=previous_state,
        new_state=sales_order_snapshot(so),
        metadata={"reason": event.reason} if event.reason else None,
    )


def handle_sales_order_closed(db: Session, event: types.SalesOrderClosed):
    """Release the unfulfilled remainder of each line and close the order."""
    so = event.sales_order
    previous_state = sales_order_snapshot(so)
    for line in so.lines:
        committed = line.quantity_committed or 0
        backordered = line.quantity_backordered or 0
        if not committed and not backordered:
            continue
        item = get_item_for_update(db, line.item_id)
        applied = apply_effect(item, AppliedEffect(committed=-committed, backordered=-backordered))
        line.quantity_committed = 0
        line.quantity_backordered = 0
        append_item_event(
            db,
            item=item,
            event_type="sales_order_closed",
            quantity_change=committed + backordered,
            reference_type=SALES_ORDER,
            reference_id=so.id,
            effect=applied,
            metadata={
                "line_id": line.id,
                "quantity_committed_reversed": -applied.committed,
                "quantity_backordered_reversed": -applied.backordered,
            },
        )
    so.status = "CLOSED"
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="closed",
        previous_state=previous_state,
        new_state=sales_order_snapshot(so),
    )


# Fulfillment


def ensure_on_hand_allowed(item: Item, quantity: int) -> None:
    if settings.ALLOW_NEGATIVE_ON_HAND:
        return
    on_hand = item.quantity_on_hand or 0
    if on_hand - quantity < 0:
        raise InsufficientInventoryError(item.name, quantity, on_hand)


def _refresh_sales_order_status(so: SalesOrder) -> None:
    if all((line.quantity_fulfilled or 0) >= line.quantity_ordered for line in so.lines):
        so.status = "FULFILLED"
    elif any((line.quantity_fulfilled or 0) > 0 for line in so.lines):
        so.status = "PARTIALLY_FULFILLED"


def handle_item_fulfilled(db: Session, event: types.ItemFulfilled):
    line = event.sales_order_line
    quantity = event.quantity
    item = get_item_for_update(db, line.item_id)
    ensure_on_hand_allowed(item, quantity)

    committed_used = min(quantity, line.quantity_committed or 0)
    backorder_used = min(quantity - committed_used, line.quantity_backordered or 0)

    if event.fulfillment_id is not None:
        reference_type, reference_id = ITEM_FULFILLMENT, event.fulfillment_id
    else:
        reference_type, reference_id = SALES_ORDER, line.sales_order_id

    fifo = consume_fifo(
        db,
        item=item,
        quantity=quantity,
        location_id=event.location_id,
        transaction_type=reference_type,
        transaction_id=reference_id,
    )
    applied = apply_effect(
        item,
        AppliedEffect(on_hand=-quantity, committed=-committed_used, backordered=-backorder_used, cost=fifo.total_cost),
    )
    line.quantity_committed = (line.quantity_committed or 0) - committed_used
    line.quantity_backordered = (line.quantity_backordered or 0) - backorder_used
    line.quantity_fulfilled = (line.quantity_fulfilled or 0) + quantity

    metadata = {
        "sales_order_id": line.sales_order_id,
        "sales_order_line_id": line.id,
        "quantity_committed_released": committed_used,
        "quantity_backorder_released": backorder_used,
        "cost_of_goods_sold": fifo.total_cost,
        "layers": _draws_metadata(fifo),
    }
    if fifo.shortfall:
        metadata["uncosted_quantity"] = fifo.shortfall

    item_event = append_item_event(
        db,
        item=item,
        event_type="item_fulfilled",
        quantity_change=-quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        effect=applied,
        metadata=metadata,
    )
    link_consumptions(db, transaction_type=reference_type, transaction_id=reference_id, item_event_id=item_event.id)
    _refresh_sales_order_status(line.sales_order)
    return fifo


def handle_fulfillment_created(db: Session, event: types.FulfillmentCreated):
    fulfillment = event.fulfillment
    so = fulfillment.sales_order
    so_previous = sales_order_snapshot(so)

    for fulfillment_line in fulfillment.lines:
        fifo = handle_item_fulfilled(
            db,
            types.ItemFulfilled(
                sales_order_line=fulfillment_line.sales_order_line,
                quantity=fulfillment_line.quantity_fulfilled,
                location_id=fulfillment.location_id,
                fulfillment_id=fulfillment.id,
            ),
        )
        fulfillment_line.cost_of_goods_sold = quantize_money(fifo.total_cost)

    append_order_event(
        db,
        order_type=ITEM_FULFILLMENT,
        order_id=fulfillment.id,
        event_type="created",
        new_state=fulfillment_snapshot(fulfillment),
    )
    return append_order_event(
        db,
        order_type=SALES_ORDER,
        order_id=so.id,
        event_type="fulfilled",
        previous_state=so_previous,
        new_state=sales_order_snapshot(so),
        metadata={"fulfillment_id": fulfillment.id, "cost_of_goods_sold": fulfillment.cost_of_goods_sold},
    )


def handle_item_shipped(db: Session, event: types.ItemShipped):
    fulfillment = event.fulfillment
    previous_state = fulfillment_snapshot(fulfillment)
    fulfillment.status = "SHIPPED"
    fulfillment.shipped_at = datetime.utcnow()
    if event.tracking_number:
        fulfillment.tracking_number = event.tracking_number
    if event.ship_method:
        fulfillment.ship_method = event.ship_method

    for fulfillment_line in fulfillment.lines:
        append_item_event(
            db,
            item=fulfillment_line.item,
            event_type="item_shipped",
            quantity_change=0,
            reference_type=ITEM_FULFILLMENT,
            reference_id=fulfillment.id,
            effect=NO_EFFECT,
            metadata={"quantity_shipped": fulfillment_line.quantity_fulfilled, "tracking_number": fulfillment.tracking_number},
        )
    return append_order_event(
        db,
        order_type=ITEM_FULFILLMENT,
        order_id=fulfillment.id,
        event_type="shipped",
        previous_state=previous_state,
        new_state=fulfillment_snapshot(fulfillment),
        metadata={"tracking_number": fulfillment.tracking_number, "ship_method": fulfillment.ship_method},
    )


# Adjustments


def handle_inventory_adjusted(db: Session, event: types.InventoryAdjusted):
    line = event.adjustment_line
    adjustment = line.inventory_adjustment
    delta = line.quantity_change
    item = get_item_for_update(db, line.item_id)
    metadata = {"adjustment_line_id": line.id, "reason": adjustment.reason}
    line.quantity_before = item.quantity_on_hand or 0

    if delta > 0:
        unit_cost = line.unit_cost
        if unit_cost is None:
            unit_cost = get_average_cost(db, item.id) or 0
            line.unit_cost = quantize_money(unit_cost)
        layer = create_cost_layer(
            db,
            item=item,
            quantity=delta,
            unit_cost=unit_cost,
            layer_type="ADJUSTMENT",
            location_id=adjustment.location_id,
            source_type="inventory_adjustment",
            source_id=adjustment.id,
        )
        metadata.update({"cost_layer_id": layer.id, "unit_cost": layer.unit_cost})
        applied = apply_effect(item, AppliedEffect(on_hand=delta))
    else:
        ensure_on_hand_allowed(item, -delta)
        fifo = consume_fifo(
            db,
            item=item,
            quantity=-delta,
            location_id=adjustment.location_id,
            transaction_type="inventory_adjustment",
            transaction_id=adjustment.id,
        )
        metadata.update({"cost_removed": fifo.total_cost, "layers": _draws_metadata(fifo)})
        if fifo.shortfall:
            metadata["uncosted_quantity"] = fifo.shortfall
        applied = apply_effect(item, AppliedEffect(on_hand=delta, cost=fifo.total_cost))

    line.quantity_after = item.quantity_on_hand
    item_event = append_item_event(
        db,
        item=item,
        event_type="inventory_adjusted",
        quantity_change=delta,
        reference_type="inventory_adjustment",
        reference_id=adjustment.id,
        effect=applied,
        metadata=metadata,
    )
    if delta < 0:
        link_consumptions(
            db,
            transaction_type="inventory_adjustment",
            transaction_id=adjustment.id,
            item_event_id=item_event.id,
        )
    return item_event
