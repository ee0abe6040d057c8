from dataclasses import dataclass

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockledger.db import Base
from stockledger.errors import ImmutableEventError
from stockledger.events import dispatch
from stockledger.events.dispatcher import HANDLERS, missing_handlers
from stockledger.events.snapshots import snapshot_lines
from stockledger.events.store import (
    append_item_event,
    append_order_event,
    find_reference_events,
    get_item_events,
    item_event_to_dict,
)
from stockledger.events.types import EVENT_TYPES
from stockledger.inventory.effects import AppliedEffect
from stockledger.models import Item, ItemEvent, OrderEvent


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


def create_item(db):
    item = Item(
        name="Widget",
        is_active=True,
        quantity_on_hand=0,
        quantity_on_order=0,
        quantity_committed=0,
        quantity_backordered=0,
        quantity_available=0,
    )
    db.add(item)
    db.flush()
    return item


def test_item_events_cannot_be_updated():
    db = create_session()
    item = create_item(db)
    event = append_item_event(db, item=item, event_type="inventory_adjusted", quantity_change=5)
    db.commit()
    event_id = event.id

    event.quantity_change = 50
    with pytest.raises(ImmutableEventError):
        db.commit()
    db.rollback()

    assert db.get(ItemEvent, event_id).quantity_change == 5


def test_item_events_cannot_be_deleted():
    db = create_session()
    item = create_item(db)
    event = append_item_event(db, item=item, event_type="inventory_adjusted", quantity_change=5)
    db.commit()
    event_id = event.id

    db.delete(event)
    with pytest.raises(ImmutableEventError):
        db.flush()
    db.rollback()

    assert db.get(ItemEvent, event_id) is not None


def test_order_events_cannot_be_rewritten():
    db = create_session()
    order_event = append_order_event(
        db,
        order_type="sales_order",
        order_id=1,
        event_type="created",
        new_state={"status": "PENDING_FULFILLMENT"},
    )
    db.commit()
    assert order_event.id

    order_event.event_type = "cancelled"
    with pytest.raises(ImmutableEventError):
        db.flush()
    db.rollback()

    db.delete(order_event)
    with pytest.raises(ImmutableEventError):
        db.flush()
    db.rollback()

    assert db.query(OrderEvent).one().event_type == "created"


def test_reference_lookup_filters_by_item_and_type():
    db = create_session()
    widget = create_item(db)
    gadget = create_item(db)
    append_item_event(db, item=widget, event_type="sales_order_created", quantity_change=-3, reference_type="sales_order", reference_id=9)
    append_item_event(db, item=gadget, event_type="sales_order_created", quantity_change=-1, reference_type="sales_order", reference_id=9)
    append_item_event(db, item=widget, event_type="item_fulfilled", quantity_change=-3, reference_type="sales_order", reference_id=9)
    append_item_event(db, item=widget, event_type="sales_order_created", quantity_change=-2, reference_type="sales_order", reference_id=10)

    assert len(find_reference_events(db, reference_type="sales_order", reference_id=9)) == 3
    widget_events = find_reference_events(
        db,
        reference_type="sales_order",
        reference_id=9,
        item_id=widget.id,
        event_types=("sales_order_created",),
    )
    assert [event.quantity_change for event in widget_events] == [-3]
    assert [event.event_type for event in get_item_events(db, widget.id)] == [
        "sales_order_created",
        "item_fulfilled",
        "sales_order_created",
    ]


def test_item_event_dict_exposes_recorded_effect():
    db = create_session()
    item = create_item(db)
    recorded = append_item_event(
        db,
        item=item,
        event_type="purchase_order_created",
        quantity_change=4,
        effect=AppliedEffect(on_order=4),
        metadata={"line_id": 1},
    )
    legacy = append_item_event(db, item=item, event_type="purchase_order_created", quantity_change=4)

    payload = item_event_to_dict(recorded)
    assert payload["effect"]["on_order"] == 4
    assert payload["effect"]["on_hand"] == 0
    assert payload["metadata"] == {"line_id": 1}
    assert item_event_to_dict(legacy)["effect"] is None


def test_every_event_type_has_a_handler():
    assert set(HANDLERS) == set(EVENT_TYPES)
    assert missing_handlers() == []
    assert "ItemReceived" in missing_handlers({})
    assert len(missing_handlers({})) == len(EVENT_TYPES)


def test_dispatching_an_unknown_event_is_rejected():
    @dataclass(frozen=True)
    class ItemTeleported:
        item_id: int

    with pytest.raises(TypeError):
        dispatch(create_session(), ItemTeleported(item_id=1))


def test_snapshot_lines_accept_older_key_names():
    state = {
        "lines": [
            {"itemId": "3", "quantity": 7},
            {"item_id": 4, "quantity_ordered": 2},
            {"description": "freight"},
        ]
    }

    lines = snapshot_lines(state)

    assert [(line["item_id"], line["quantity_ordered"]) for line in lines] == [(3, 7), (4, 2)]
    assert snapshot_lines(None) == []
