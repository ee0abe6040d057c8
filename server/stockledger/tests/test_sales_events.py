from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockledger.config import settings
from stockledger.db import Base
from stockledger.errors import InsufficientInventoryError, OrderStateError, ValidationFailure
from stockledger.events import dispatch, handlers
from stockledger.events.reversal import ITEM_FULFILLMENT, SALES_ORDER
from stockledger.events.store import append_item_event, get_order_history
from stockledger.events.types import SalesOrderDeleted
from stockledger.inventory.service import create_item
from stockledger.models import Item, ItemEvent, LayerConsumption, SalesOrder, SalesOrderLine
from stockledger.sales.fulfillment import fulfill_sales_order, pack_fulfillment, ship_fulfillment
from stockledger.sales.service import (
    cancel_sales_order,
    close_sales_order,
    create_sales_order,
    delete_sales_order,
    update_sales_order,
)
from stockledger.utils.serialization import loads


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


def stocked_item(db, on_hand, unit_cost="4.00", name="Widget"):
    return create_item(db, {"name": name, "quantity_on_hand": on_hand, "unit_cost": Decimal(unit_cost)})


def create_so(db, item, quantity, unit_price="10.00"):
    return create_sales_order(
        db,
        {
            "customer_name": "Northwind",
            "lines": [{"item_id": item.id, "quantity": quantity, "unit_price": Decimal(unit_price)}],
        },
    )


def fulfill(db, so, quantity, line_index=0):
    return fulfill_sales_order(db, so, {"lines": [{"line_id": so.lines[line_index].id, "quantity": quantity}]})


def test_order_beyond_available_is_split_into_committed_and_backordered():
    db = create_session()
    item = stocked_item(db, 50)

    so = create_so(db, item, 60)
    db.commit()

    line = so.lines[0]
    assert line.quantity_committed == 50
    assert line.quantity_backordered == 10
    assert item.quantity_committed == 50
    assert item.quantity_backordered == 10
    assert item.quantity_available == 0
    assert so.order_number == "SO-00001"


def test_fulfillment_relieves_commitment_and_costs_goods_sold():
    db = create_session()
    item = stocked_item(db, 100)
    so = create_so(db, item, 50)
    assert item.quantity_available == 50

    fulfillment = fulfill(db, so, 50)
    db.commit()

    assert item.quantity_on_hand == 50
    assert item.quantity_committed == 0
    assert item.quantity_available == 50
    assert so.status == "FULFILLED"
    assert so.lines[0].quantity_fulfilled == 50
    assert fulfillment.fulfillment_number == "IF-00001"
    assert fulfillment.status == "PICKED"
    assert fulfillment.lines[0].cost_of_goods_sold == Decimal("200.00")
    assert fulfillment.cost_of_goods_sold == Decimal("200.00")

    event = (
        db.query(ItemEvent)
        .filter(ItemEvent.item_id == item.id, ItemEvent.event_type == "item_fulfilled")
        .one()
    )
    assert event.reference_type == ITEM_FULFILLMENT
    assert event.reference_id == fulfillment.id
    assert event.effect.on_hand == -50
    assert event.effect.committed == -50
    assert event.cost_consumed == Decimal("200.00")
    consumption = db.query(LayerConsumption).filter(LayerConsumption.transaction_type == ITEM_FULFILLMENT).one()
    assert consumption.item_event_id == event.id


def test_fulfilling_a_backordered_line_keeps_other_orders_committed():
    db = create_session()
    item = stocked_item(db, 10)
    held = create_so(db, item, 10)
    waiting = create_so(db, item, 5)
    assert waiting.lines[0].quantity_backordered == 5

    fulfill(db, waiting, 5)

    assert item.quantity_on_hand == 5
    assert item.quantity_committed == 10
    assert item.quantity_backordered == 0
    assert held.lines[0].quantity_committed == 10
    assert waiting.lines[0].quantity_backordered == 0


def test_partial_fulfillment_then_close_releases_the_remainder():
    db = create_session()
    item = stocked_item(db, 30)
    so = create_so(db, item, 50)

    fulfill(db, so, 30)
    assert so.status == "PARTIALLY_FULFILLED"
    assert item.quantity_backordered == 20

    close_sales_order(db, so)
    db.commit()

    assert so.status == "CLOSED"
    assert item.quantity_committed == 0
    assert item.quantity_backordered == 0
    assert so.lines[0].quantity_backordered == 0
    history = get_order_history(db, SALES_ORDER, so.id)
    assert [entry["event_type"] for entry in history] == ["created", "fulfilled", "closed"]


def test_fulfilling_past_layers_records_uncosted_quantity():
    db = create_session()
    item = stocked_item(db, 5, unit_cost="2.00")
    so = create_so(db, item, 8)

    fulfillment = fulfill(db, so, 8)

    assert item.quantity_on_hand == -3
    assert fulfillment.cost_of_goods_sold == Decimal("10.00")
    event = db.query(ItemEvent).filter(ItemEvent.event_type == "item_fulfilled").one()
    assert loads(event.event_metadata)["uncosted_quantity"] == 3


def test_update_with_identical_lines_round_trips_quantities():
    db = create_session()
    item = stocked_item(db, 50)
    so = create_so(db, item, 60)

    update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 60, "unit_price": Decimal("10.00")}]})
    update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 60, "unit_price": Decimal("10.00")}]})
    db.commit()

    assert item.quantity_committed == 50
    assert item.quantity_backordered == 10
    assert item.quantity_available == 0
    history = get_order_history(db, SALES_ORDER, so.id)
    assert [entry["event_type"] for entry in history] == ["created", "updated", "updated"]


def test_update_to_smaller_quantity_frees_availability():
    db = create_session()
    item = stocked_item(db, 50)
    so = create_so(db, item, 60)

    update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 20}]})

    assert item.quantity_committed == 20
    assert item.quantity_backordered == 0
    assert item.quantity_available == 30


def test_delete_restores_availability():
    db = create_session()
    item = stocked_item(db, 50)
    so = create_so(db, item, 60)
    so_id = so.id

    delete_sales_order(db, so)
    db.commit()

    assert db.get(SalesOrder, so_id) is None
    assert item.quantity_committed == 0
    assert item.quantity_backordered == 0
    assert item.quantity_available == 50
    history = get_order_history(db, SALES_ORDER, so_id)
    assert [entry["event_type"] for entry in history] == ["created", "deleted"]


def test_order_created_after_a_delete_gets_fresh_id_and_number():
    db = create_session()
    item = stocked_item(db, 50)
    first = create_so(db, item, 5)
    db.commit()
    first_id = first.id

    delete_sales_order(db, first)
    db.commit()
    second = create_so(db, item, 3)
    db.commit()

    assert second.id != first_id
    assert second.order_number == "SO-00002"
    history = get_order_history(db, SALES_ORDER, second.id)
    assert [entry["event_type"] for entry in history] == ["created"]
    assert db.get(Item, item.id).quantity_committed == 3


def test_update_skips_commitment_lookup_when_backorders_allowed(monkeypatch):
    db = create_session()
    item = stocked_item(db, 50)
    so = create_so(db, item, 20)

    def unexpected_lookup(*args, **kwargs):
        raise AssertionError("held commitment looked up while backorders are allowed")

    monkeypatch.setattr(handlers, "net_order_effect", unexpected_lookup)
    update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 25}]})

    assert item.quantity_committed == 25
    assert item.quantity_available == 25


def test_update_with_backorders_disabled_counts_the_orders_own_commitment(monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_BACKORDERS", False)
    db = create_session()
    item = stocked_item(db, 10)
    so = create_so(db, item, 10)
    assert item.quantity_available == 0

    update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 10}]})
    assert item.quantity_committed == 10

    with pytest.raises(InsufficientInventoryError) as excinfo:
        update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 11}]})
    assert excinfo.value.available == 10


def test_delete_reverses_events_recorded_without_effects():
    db = create_session()
    item = stocked_item(db, 50)
    item.quantity_committed = 20
    item.quantity_backordered = 5
    item.quantity_available = 30
    so = SalesOrder(order_number="SO-00042", order_date=date(2026, 5, 1), status="PENDING_FULFILLMENT")
    so.lines = [SalesOrderLine(item_id=item.id, quantity_ordered=25, quantity_committed=20, quantity_backordered=5)]
    db.add(so)
    db.flush()
    append_item_event(
        db,
        item=item,
        event_type="sales_order_created",
        quantity_change=-25,
        reference_type=SALES_ORDER,
        reference_id=so.id,
        metadata={"quantity_committed": 20, "quantity_backordered": 5},
    )

    dispatch(
        db,
        SalesOrderDeleted(order_id=so.id, order_state={"order_number": "SO-00042", "lines": [{"itemId": item.id, "quantity": 25}]}),
    )

    assert item.quantity_committed == 0
    assert item.quantity_backordered == 0
    assert item.quantity_available == 50
    reversal = db.query(ItemEvent).filter(ItemEvent.event_type == "sales_order_deleted").one()
    assert loads(reversal.event_metadata) == {"quantity_backordered_reversed": 5, "quantity_committed_reversed": 20}


def test_cancel_releases_commitment_and_records_reason():
    db = create_session()
    item = stocked_item(db, 50)
    so = create_so(db, item, 60)

    cancel_sales_order(db, so, reason="Customer withdrew")
    db.commit()

    assert so.status == "CANCELLED"
    assert item.quantity_committed == 0
    assert item.quantity_backordered == 0
    assert so.lines[0].quantity_committed == 0
    history = get_order_history(db, SALES_ORDER, so.id)
    assert history[-1]["event_type"] == "cancelled"
    assert history[-1]["previous_state"]["status"] == "PENDING_FULFILLMENT"
    assert history[-1]["metadata"] == {"reason": "Customer withdrew"}


def test_backorders_disabled_rejects_order_without_touching_inventory(monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_BACKORDERS", False)
    db = create_session()
    item = stocked_item(db, 5)
    db.commit()

    with pytest.raises(InsufficientInventoryError) as excinfo:
        create_so(db, item, 10)
    db.rollback()

    assert excinfo.value.requested == 10
    assert excinfo.value.available == 5
    assert db.query(SalesOrder).count() == 0
    assert db.get(Item, item.id).quantity_committed == 0
    assert db.query(ItemEvent).filter(ItemEvent.reference_type == SALES_ORDER).count() == 0


def test_negative_on_hand_disabled_rejects_fulfillment(monkeypatch):
    db = create_session()
    item = stocked_item(db, 5)
    so = create_so(db, item, 10)
    monkeypatch.setattr(settings, "ALLOW_NEGATIVE_ON_HAND", False)

    with pytest.raises(InsufficientInventoryError):
        fulfill(db, so, 10)

    assert item.quantity_on_hand == 5
    assert so.lines[0].quantity_fulfilled == 0


def test_over_fulfillment_is_rejected():
    db = create_session()
    item = stocked_item(db, 20)
    so = create_so(db, item, 10)

    with pytest.raises(ValidationFailure):
        fulfill(db, so, 11)


def test_orders_with_fulfillments_can_no_longer_be_edited():
    db = create_session()
    item = stocked_item(db, 20)
    so = create_so(db, item, 10)
    fulfill(db, so, 4)

    with pytest.raises(OrderStateError):
        update_sales_order(db, so, {"lines": [{"item_id": item.id, "quantity": 12}]})
    with pytest.raises(OrderStateError):
        delete_sales_order(db, so)
    with pytest.raises(OrderStateError):
        cancel_sales_order(db, so)


def test_shipping_records_events_without_changing_quantities():
    db = create_session()
    item = stocked_item(db, 20)
    so = create_so(db, item, 10)
    fulfillment = fulfill(db, so, 10)
    on_hand = item.quantity_on_hand

    pack_fulfillment(fulfillment)
    ship_fulfillment(db, fulfillment, {"tracking_number": "1Z999", "ship_method": "UPS"})
    db.commit()

    assert fulfillment.status == "SHIPPED"
    assert fulfillment.is_shipped
    assert fulfillment.tracking_number == "1Z999"
    assert fulfillment.shipped_at is not None
    assert item.quantity_on_hand == on_hand
    shipped = db.query(ItemEvent).filter(ItemEvent.event_type == "item_shipped").one()
    assert shipped.quantity_change == 0
    assert shipped.effect.is_zero
    history = get_order_history(db, ITEM_FULFILLMENT, fulfillment.id)
    assert [entry["event_type"] for entry in history] == ["created", "shipped"]

    with pytest.raises(OrderStateError):
        ship_fulfillment(db, fulfillment)
