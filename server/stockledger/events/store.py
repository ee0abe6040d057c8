"""Append-only store of item and order events.

Item events record the per-item deltas a handler applied; order events keep
before/after JSON snapshots of the order so its history can be replayed.
"""
from dataclasses import asdict
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from stockledger.events.immutability import register_immutability_listeners
from stockledger.inventory.effects import AppliedEffect
from stockledger.models import Item, ItemEvent, OrderEvent
from stockledger.utils.money import quantize_money
from stockledger.utils.serialization import dumps, loads


logger = logging.getLogger(__name__)

register_immutability_listeners()


def append_item_event(
    db: Session,
    *,
    item: Item,
    event_type: str,
    quantity_change: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    effect: AppliedEffect | None = None,
    metadata: dict | None = None,
    event_date: datetime | None = None,
) -> ItemEvent:
    item_event = ItemEvent(
        item_id=item.id,
        event_type=event_type,
        quantity_change=quantity_change,
        reference_type=reference_type,
        reference_id=reference_id,
        event_metadata=dumps(metadata),
        event_date=event_date or datetime.utcnow(),
    )
    if effect is not None:
        item_event.on_hand_delta = effect.on_hand
        item_event.on_order_delta = effect.on_order
        item_event.committed_delta = effect.committed
        item_event.backordered_delta = effect.backordered
        item_event.cost_consumed = quantize_money(effect.cost)
    db.add(item_event)
    db.flush()
    logger.debug(
        "Item event appended: item_id=%s type=%s qty=%s ref=%s:%s",
        item.id,
        event_type,
        quantity_change,
        reference_type,
        reference_id,
    )
    return item_event


def append_order_event(
    db: Session,
    *,
    order_type: str,
    order_id: int,
    event_type: str,
    previous_state: dict | None = None,
    new_state: dict | None = None,
    metadata: dict | None = None,
    event_date: datetime | None = None,
) -> OrderEvent:
    order_event = OrderEvent(
        order_type=order_type,
        order_id=order_id,
        event_type=event_type,
        previous_state=dumps(previous_state),
        new_state=dumps(new_state),
        event_metadata=dumps(metadata),
        event_date=event_date or datetime.utcnow(),
    )
    db.add(order_event)
    db.flush()
    logger.info("Order event recorded: %s %s %s", order_type, order_id, event_type)
    return order_event


def get_item_events(db: Session, item_id: int) -> list[ItemEvent]:
    return (
        db.query(ItemEvent)
        .filter(ItemEvent.item_id == item_id)
        .order_by(ItemEvent.event_date.asc(), ItemEvent.id.asc())
        .all()
    )


def find_reference_events(
    db: Session,
    *,
    reference_type: str,
    reference_id: int,
    item_id: int | None = None,
    event_types: list[str] | tuple[str, ...] | set[str] | None = None,
) -> list[ItemEvent]:
    query = db.query(ItemEvent).filter(
        ItemEvent.reference_type == reference_type,
        ItemEvent.reference_id == reference_id,
    )
    if item_id is not None:
        query = query.filter(ItemEvent.item_id == item_id)
    if event_types:
        query = query.filter(ItemEvent.event_type.in_(list(event_types)))
    return query.order_by(ItemEvent.event_date.asc(), ItemEvent.id.asc()).all()


def get_order_history(db: Session, order_type: str, order_id: int) -> list[dict]:
    rows = (
        db.query(OrderEvent)
        .filter(OrderEvent.order_type == order_type, OrderEvent.order_id == order_id)
        .order_by(OrderEvent.event_date.asc(), OrderEvent.id.asc())
        .all()
    )
    return [
        {
            "event_type": row.event_type,
            "event_date": row.event_date,
            "previous_state": loads(row.previous_state),
            "new_state": loads(row.new_state),
            "metadata": loads(row.event_metadata),
        }
        for row in rows
    ]


def item_event_to_dict(event: ItemEvent) -> dict:
    return {
        "id": event.id,
        "item_id": event.item_id,
        "event_type": event.event_type,
        "quantity_change": event.quantity_change,
        "reference_type": event.reference_type,
        "reference_id": event.reference_id,
        "event_date": event.event_date,
        "effect": asdict(event.effect) if event.effect is not None else None,
        "metadata": loads(event.event_metadata),
    }
