"""Order status rules and the undo side of update/delete/cancel.

An order's effect on an item is the sum of the effects recorded on the item
events that reference it. Reversing an order applies the inverse of that sum
once per distinct item of the order's previous snapshot.
"""
import logging

from sqlalchemy.orm import Session

from stockledger.errors import OrderStateError
from stockledger.events.snapshots import snapshot_lines
from stockledger.events.store import append_item_event, find_reference_events
from stockledger.inventory.effects import AppliedEffect, sum_effects
from stockledger.inventory.projection import apply_effect, get_item_for_update, legacy_effect
from stockledger.models import PurchaseOrder, SalesOrder


logger = logging.getLogger(__name__)

PURCHASE_ORDER = "purchase_order"
SALES_ORDER = "sales_order"
ITEM_FULFILLMENT = "item_fulfillment"

PURCHASE_ORDER_TRANSITIONS = {
    "PENDING_APPROVAL": {"PENDING_RECEIPT", "CANCELLED", "CLOSED"},
    "PENDING_RECEIPT": {"PARTIALLY_RECEIVED", "RECEIVED", "CANCELLED", "CLOSED"},
    "PARTIALLY_RECEIVED": {"PARTIALLY_RECEIVED", "RECEIVED", "CLOSED"},
    "RECEIVED": {"CLOSED"},
    "CLOSED": set(),
    "CANCELLED": set(),
}

SALES_ORDER_TRANSITIONS = {
    "DRAFT": {"PENDING_FULFILLMENT", "CANCELLED"},
    "PENDING_FULFILLMENT": {"PARTIALLY_FULFILLED", "FULFILLED", "CANCELLED"},
    "PARTIALLY_FULFILLED": {"PARTIALLY_FULFILLED", "FULFILLED", "CLOSED"},
    "FULFILLED": {"CLOSED"},
    "CLOSED": set(),
    "CANCELLED": set(),
}

FULFILLMENT_TRANSITIONS = {
    "PICKED": {"PACKED", "SHIPPED"},
    "PACKED": {"SHIPPED"},
    "SHIPPED": {"DELIVERED"},
    "DELIVERED": set(),
}

PURCHASE_ORDER_EDITABLE = {"PENDING_APPROVAL", "PENDING_RECEIPT"}
SALES_ORDER_EDITABLE = {"DRAFT", "PENDING_FULFILLMENT"}

# Item events that carry the on-order or commitment an order holds.
COMMITMENT_EVENT_TYPES = {
    PURCHASE_ORDER: (
        "purchase_order_created",
        "purchase_order_updated",
        "purchase_order_updated_reversal",
        "purchase_order_deleted",
        "purchase_order_closed",
    ),
    SALES_ORDER: (
        "sales_order_created",
        "sales_order_updated",
        "sales_order_updated_reversal",
        "sales_order_deleted",
        "sales_order_cancelled",
    ),
}


def ensure_transition(label: str, current: str, target: str, transitions: dict[str, set[str]]) -> None:
    if target not in transitions.get(current, set()):
        raise OrderStateError(f"{label} cannot move from {current} to {target}.")


def ensure_purchase_order_editable(po: PurchaseOrder) -> None:
    if po.status not in PURCHASE_ORDER_EDITABLE:
        raise OrderStateError(f"Purchase order {po.order_number} is {po.status} and can no longer be changed.")
    if any((line.quantity_received or 0) > 0 for line in po.lines):
        raise OrderStateError(f"Purchase order {po.order_number} has receipts and can no longer be changed.")


def ensure_sales_order_editable(so: SalesOrder) -> None:
    if so.status not in SALES_ORDER_EDITABLE:
        raise OrderStateError(f"Sales order {so.order_number} is {so.status} and can no longer be changed.")
    if any((line.quantity_fulfilled or 0) > 0 for line in so.lines):
        raise OrderStateError(f"Sales order {so.order_number} has fulfillments and can no longer be changed.")


def net_order_effect(
    db: Session,
    *,
    order_type: str,
    order_id: int,
    item_id: int,
    fallback_quantity: int,
) -> AppliedEffect:
    """What the order currently holds on one item, from its recorded events."""
    events = find_reference_events(
        db,
        reference_type=order_type,
        reference_id=order_id,
        item_id=item_id,
        event_types=COMMITMENT_EVENT_TYPES[order_type],
    )
    if not events:
        if order_type == PURCHASE_ORDER:
            return AppliedEffect(on_order=fallback_quantity)
        return AppliedEffect(committed=fallback_quantity)
    net = sum_effects(event.effect or legacy_effect(event) for event in events)
    return AppliedEffect(on_order=net.on_order, committed=net.committed, backordered=net.backordered)


def reverse_order_effects(
    db: Session,
    *,
    order_type: str,
    order_id: int,
    previous_state: dict,
    event_type: str,
    metadata: dict | None = None,
) -> dict[int, AppliedEffect]:
    """Undo what the order holds on every item of ``previous_state``.

    Returns the applied (inverted) effect per item id.
    """
    fallback_by_item: dict[int, int] = {}
    for line in snapshot_lines(previous_state):
        fallback_by_item[line["item_id"]] = fallback_by_item.get(line["item_id"], 0) + line["quantity_ordered"]

    reversed_by_item: dict[int, AppliedEffect] = {}
    for item_id, fallback_quantity in fallback_by_item.items():
        item = get_item_for_update(db, item_id)
        held = net_order_effect(
            db,
            order_type=order_type,
            order_id=order_id,
            item_id=item_id,
            fallback_quantity=fallback_quantity,
        )
        if held.is_zero:
            continue

        applied = apply_effect(item, held.inverted())
        if order_type == PURCHASE_ORDER:
            quantity_change = applied.on_order
            event_metadata = {"quantity_reversed": -applied.on_order}
        else:
            quantity_change = -(applied.committed + applied.backordered)
            event_metadata = {
                "quantity_committed_reversed": -applied.committed,
                "quantity_backordered_reversed": -applied.backordered,
            }
        event_metadata.update(metadata or {})
        append_item_event(
            db,
            item=item,
            event_type=event_type,
            quantity_change=quantity_change,
            reference_type=order_type,
            reference_id=order_id,
            effect=applied,
            metadata=event_metadata,
        )
        reversed_by_item[item_id] = applied
        logger.info(
            "Reversed %s %s on item %s: %s",
            order_type,
            order_id,
            item_id,
            applied,
        )
    return reversed_by_item
