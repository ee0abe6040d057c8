from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from stockledger.errors import NotFoundError
from stockledger.inventory.effects import AppliedEffect
from stockledger.models import Item, ItemEvent
from stockledger.utils.serialization import loads


logger = logging.getLogger(__name__)


def recompute_available(item: Item) -> int:
    item.quantity_available = (item.quantity_on_hand or 0) - (item.quantity_committed or 0)
    return item.quantity_available


def apply_effect(item: Item, effect: AppliedEffect) -> AppliedEffect:
    """Apply ``effect`` to the item and return the deltas that actually landed.

    Committed, backordered and on-order never go below zero; the returned
    effect reflects any clamping so a later reversal undoes only what was
    applied. On-hand is left unclamped.
    """
    on_hand_before = item.quantity_on_hand or 0
    on_order_before = item.quantity_on_order or 0
    committed_before = item.quantity_committed or 0
    backordered_before = item.quantity_backordered or 0

    item.quantity_on_hand = on_hand_before + effect.on_hand
    item.quantity_on_order = max(0, on_order_before + effect.on_order)
    item.quantity_committed = max(0, committed_before + effect.committed)
    item.quantity_backordered = max(0, backordered_before + effect.backordered)
    recompute_available(item)

    if item.quantity_on_hand < 0:
        logger.warning(
            "Item on hand went negative: item_id=%s on_hand=%s delta=%s",
            item.id,
            item.quantity_on_hand,
            effect.on_hand,
        )

    return AppliedEffect(
        on_hand=effect.on_hand,
        on_order=item.quantity_on_order - on_order_before,
        committed=item.quantity_committed - committed_before,
        backordered=item.quantity_backordered - backordered_before,
        cost=effect.cost,
    )


# Events recorded before per-event deltas were stored carry only a type and a quantity.
def legacy_effect(event: ItemEvent) -> AppliedEffect:
    quantity = event.quantity_change or 0
    metadata = loads(event.event_metadata) or {}
    event_type = event.event_type

    if event_type in {"item_received"}:
        return AppliedEffect(on_hand=quantity, on_order=-quantity)
    if event_type in {"inventory_adjusted", "inventory_adjustment"}:
        return AppliedEffect(on_hand=quantity)
    if event_type in {"item_fulfilled"}:
        return AppliedEffect(on_hand=quantity, committed=quantity)
    if event_type.startswith("purchase_order_"):
        return AppliedEffect(on_order=quantity)
    if event_type.startswith("sales_order_"):
        committed = metadata.get("quantity_committed", metadata.get("quantity_committed_reversed"))
        backordered = metadata.get("quantity_backordered", metadata.get("quantity_backordered_reversed"))
        if committed is None:
            committed = abs(quantity)
            backordered = 0
        sign = 1 if quantity <= 0 else -1
        return AppliedEffect(committed=sign * int(committed), backordered=sign * int(backordered or 0))
    return AppliedEffect()


def replay_item_quantities(db: Session, item_id: int, *, apply: bool = False) -> dict:
    """Rebuild an item's quantity fields from its event stream.

    Returns the computed quantities; when ``apply`` is true the item row is
    overwritten with them.
    """
    item = db.get(Item, item_id)
    if not item:
        raise NotFoundError("Item", item_id)

    on_hand = on_order = committed = backordered = 0
    cost = Decimal("0")
    events = (
        db.query(ItemEvent)
        .filter(ItemEvent.item_id == item_id)
        .order_by(ItemEvent.event_date.asc(), ItemEvent.id.asc())
        .all()
    )
    for event in events:
        effect = event.effect or legacy_effect(event)
        on_hand += effect.on_hand
        on_order = max(0, on_order + effect.on_order)
        committed = max(0, committed + effect.committed)
        backordered = max(0, backordered + effect.backordered)
        cost += effect.cost

    quantities = {
        "quantity_on_hand": on_hand,
        "quantity_on_order": on_order,
        "quantity_committed": committed,
        "quantity_backordered": backordered,
        "quantity_available": on_hand - committed,
        "cost_consumed": cost,
    }

    if apply:
        item.quantity_on_hand = on_hand
        item.quantity_on_order = on_order
        item.quantity_committed = committed
        item.quantity_backordered = backordered
        recompute_available(item)
        logger.info("Item quantities rebuilt from %s events: item_id=%s", len(events), item_id)

    return quantities


def get_item_for_update(db: Session, item_id: int) -> Item:
    item = db.query(Item).filter(Item.id == item_id).with_for_update().first()
    if not item:
        raise NotFoundError("Item", item_id)
    return item
