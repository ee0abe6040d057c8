from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from stockledger.config import settings
from stockledger.costing.service import (
    calculate_item_valuation,
    calculate_total_inventory_valuation,
    consume_fifo,
    find_available_layers,
    get_average_cost,
)
from stockledger.db import Base
from stockledger.errors import CostLayerShortfallError
from stockledger.models import CostLayer, Item, LayerConsumption


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


def create_item(db, name="Widget", on_hand=0):
    item = Item(
        name=name,
        is_active=True,
        quantity_on_hand=on_hand,
        quantity_on_order=0,
        quantity_committed=0,
        quantity_backordered=0,
        quantity_available=on_hand,
    )
    db.add(item)
    db.flush()
    return item


def add_layer(db, item, quantity, unit_cost, receipt_date):
    layer = CostLayer(
        item_id=item.id,
        layer_type="RECEIPT",
        quantity_received=quantity,
        quantity_remaining=quantity,
        unit_cost=Decimal(unit_cost),
        receipt_date=receipt_date,
    )
    db.add(layer)
    db.flush()
    return layer


def test_fifo_consumes_oldest_layers_first():
    db = create_session()
    item = create_item(db, on_hand=100)
    first = add_layer(db, item, 30, "5.00", datetime(2026, 1, 1))
    second = add_layer(db, item, 70, "7.00", datetime(2026, 1, 2))

    result = consume_fifo(db, item=item, quantity=50, transaction_type="item_fulfillment", transaction_id=1)
    db.flush()

    assert result.total_cost == Decimal("290.00")
    assert result.total_cost == 290.0
    assert [(draw.consumed, draw.unit_cost) for draw in result.draws] == [(30, Decimal("5.00")), (20, Decimal("7.00"))]
    assert result.shortfall == 0
    assert first.quantity_remaining == 0
    assert second.quantity_remaining == 50
    assert db.query(LayerConsumption).count() == 2


def test_fifo_breaks_receipt_date_ties_by_layer_id():
    db = create_session()
    item = create_item(db, on_hand=20)
    same_day = datetime(2026, 3, 1, 9, 0, 0)
    older = add_layer(db, item, 10, "4.00", same_day)
    newer = add_layer(db, item, 10, "1.00", same_day)

    assert [layer.id for layer in find_available_layers(db, item.id)] == [older.id, newer.id]

    result = consume_fifo(db, item=item, quantity=10, transaction_type="item_fulfillment", transaction_id=7)

    assert result.total_cost == Decimal("40.00")
    assert older.quantity_remaining == 0
    assert newer.quantity_remaining == 10


def test_fifo_without_layers_logs_shortfall_instead_of_failing():
    db = create_session()
    item = create_item(db)

    result = consume_fifo(db, item=item, quantity=50, transaction_type="item_fulfillment", transaction_id=1)

    assert result.total_cost == Decimal("0.00")
    assert result.shortfall == 50
    assert result.draws == ()


def test_fifo_partial_coverage_costs_what_it_can():
    db = create_session()
    item = create_item(db, on_hand=10)
    add_layer(db, item, 10, "3.00", datetime(2026, 1, 1))

    result = consume_fifo(db, item=item, quantity=25, transaction_type="item_fulfillment", transaction_id=2)

    assert result.total_cost == Decimal("30.00")
    assert result.quantity_costed == 10
    assert result.shortfall == 15
    assert sum(draw.consumed for draw in result.draws) <= 25


def test_fifo_fail_policy_rejects_shortfall_before_touching_layers(monkeypatch):
    monkeypatch.setattr(settings, "COST_SHORTFALL_POLICY", "fail")
    db = create_session()
    item = create_item(db, on_hand=10)
    layer = add_layer(db, item, 10, "3.00", datetime(2026, 1, 1))

    with pytest.raises(CostLayerShortfallError) as excinfo:
        consume_fifo(db, item=item, quantity=12, transaction_type="item_fulfillment", transaction_id=3)

    assert excinfo.value.shortfall == 2
    assert layer.quantity_remaining == 10
    assert db.query(LayerConsumption).count() == 0


def test_layer_consume_never_exceeds_remaining():
    db = create_session()
    item = create_item(db, on_hand=30)
    layer = add_layer(db, item, 30, "5.00", datetime(2026, 1, 1))

    draw = layer.consume(50)

    assert draw.consumed == 30
    assert draw.cost == Decimal("150.00")
    assert layer.quantity_remaining == 0
    assert layer.consume(5).consumed == 0


def test_layer_remaining_cannot_exceed_received():
    db = create_session()
    item = create_item(db)
    layer = add_layer(db, item, 5, "1.00", datetime(2026, 1, 1))
    db.commit()

    layer.quantity_remaining = 6
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_item_valuation_sums_remaining_layers_and_is_repeatable():
    db = create_session()
    item = create_item(db, on_hand=100)
    other = create_item(db, name="Gadget", on_hand=4)
    add_layer(db, item, 30, "5.00", datetime(2026, 1, 1))
    add_layer(db, item, 70, "7.00", datetime(2026, 1, 2))
    add_layer(db, other, 4, "2.50", datetime(2026, 1, 3))

    first = calculate_item_valuation(db, item.id)
    second = calculate_item_valuation(db, item.id)

    assert first == Decimal("640.00")
    assert second == first
    assert calculate_total_inventory_valuation(db) == Decimal("650.00")

    consume_fifo(db, item=item, quantity=50, transaction_type="item_fulfillment", transaction_id=1)
    db.flush()

    assert calculate_item_valuation(db, item.id) == Decimal("350.00")


def test_average_cost_weights_remaining_quantities():
    db = create_session()
    item = create_item(db, on_hand=100)
    add_layer(db, item, 30, "5.00", datetime(2026, 1, 1))
    add_layer(db, item, 70, "7.00", datetime(2026, 1, 2))

    assert get_average_cost(db, item.id) == Decimal("6.40")
    assert get_average_cost(db, create_item(db, name="Empty").id) is None
