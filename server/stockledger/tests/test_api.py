from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.db import Base, get_db
from stockledger.main import app


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)


def create_vendor(client, name="Acme Supply"):
    response = client.post("/api/inventory/vendors", json={"name": name})
    assert response.status_code == 201
    return response.json()


def create_item(client, name="Widget", **extra):
    response = client.post("/api/inventory/items", json={"name": name, **extra})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_purchase_to_ship_flow(client):
    vendor = create_vendor(client)
    item = create_item(client, sku="W-1")

    po = client.post(
        "/api/purchase-orders",
        json={
            "vendor_id": vendor["id"],
            "order_date": "2026-05-01",
            "lines": [{"item_id": item["item_id"], "quantity": 100, "rate": "5.00"}],
        },
    )
    assert po.status_code == 201
    po = po.json()
    assert po["status"] == "PENDING_APPROVAL"
    assert Decimal(po["total"]) == Decimal("500.00")

    approved = client.post(f"/api/purchase-orders/{po['id']}/approve")
    assert approved.json()["status"] == "PENDING_RECEIPT"

    receipt = client.post(
        f"/api/purchase-orders/{po['id']}/receive",
        json={"lines": [{"line_id": po["lines"][0]["id"], "quantity": 50}]},
    )
    assert receipt.status_code == 201
    assert receipt.json()["lines"][0]["quantity_received"] == 50

    quantities = client.get(f"/api/inventory/items/{item['item_id']}").json()
    assert quantities["quantity_on_hand"] == 50
    assert quantities["quantity_on_order"] == 50
    assert quantities["quantity_available"] == 50
    assert quantities["projected_available"] == 100

    so = client.post(
        "/api/sales-orders",
        json={
            "customer_name": "Northwind",
            "lines": [{"item_id": item["item_id"], "quantity": 60, "unit_price": "9.00"}],
        },
    )
    assert so.status_code == 201
    so = so.json()
    assert so["lines"][0]["quantity_committed"] == 50
    assert so["lines"][0]["quantity_backordered"] == 10

    backordered = client.get("/api/inventory/backordered").json()
    assert backordered["items"][0]["quantity_backordered"] == 10
    assert Decimal(backordered["total_backordered_value"]) == Decimal("90.00")

    fulfillment = client.post(
        f"/api/sales-orders/{so['id']}/fulfill",
        json={"lines": [{"line_id": so["lines"][0]["id"], "quantity": 20}]},
    )
    assert fulfillment.status_code == 201
    fulfillment = fulfillment.json()
    assert fulfillment["status"] == "PICKED"
    assert Decimal(fulfillment["cost_of_goods_sold"]) == Decimal("100.00")

    shipped = client.post(f"/api/fulfillments/{fulfillment['id']}/ship", json={"tracking_number": "1Z999"})
    assert shipped.status_code == 200
    assert shipped.json()["status"] == "SHIPPED"
    assert shipped.json()["tracking_number"] == "1Z999"

    valuation = client.get(f"/api/inventory/items/{item['item_id']}/valuation").json()
    assert valuation["quantity_on_hand"] == 30
    assert Decimal(valuation["total_value"]) == Decimal("150.00")
    assert Decimal(valuation["average_cost"]) == Decimal("5.00")
    assert valuation["layers"][0]["quantity_remaining"] == 30
    assert Decimal(client.get("/api/inventory/valuation").json()["total_value"]) == Decimal("150.00")

    events = client.get(f"/api/inventory/items/{item['item_id']}/events").json()
    assert [event["event_type"] for event in events] == [
        "purchase_order_created",
        "item_received",
        "sales_order_created",
        "item_fulfilled",
        "item_shipped",
    ]
    assert events[1]["effect"]["on_hand"] == 50

    so_history = client.get(f"/api/sales-orders/{so['id']}/history").json()
    assert [entry["event_type"] for entry in so_history] == ["created", "fulfilled"]
    po_history = client.get(f"/api/purchase-orders/{po['id']}/history").json()
    assert [entry["event_type"] for entry in po_history] == ["created", "approved", "received"]


def test_adjustment_endpoint_posts_lines(client):
    item = create_item(client, quantity_on_hand=10, unit_cost="2.00")

    response = client.post(
        "/api/inventory/adjustments",
        json={"reason": "Damaged", "lines": [{"item_id": item["item_id"], "quantity_change": -4}]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "POSTED"
    assert body["lines"][0]["quantity_before"] == 10
    assert body["lines"][0]["quantity_after"] == 6
    assert client.get(f"/api/inventory/items/{item['item_id']}").json()["quantity_on_hand"] == 6


def test_errors_map_to_status_codes(client):
    vendor = create_vendor(client)
    item = create_item(client)

    assert client.get("/api/inventory/items/999").status_code == 404
    assert client.get("/api/sales-orders/999").status_code == 404

    missing_item = client.post(
        "/api/purchase-orders",
        json={"vendor_id": vendor["id"], "order_date": "2026-05-01", "lines": [{"item_id": 999, "quantity": 1}]},
    )
    assert missing_item.status_code == 404

    po = client.post(
        "/api/purchase-orders",
        json={
            "vendor_id": vendor["id"],
            "order_date": "2026-05-01",
            "lines": [{"item_id": item["item_id"], "quantity": 5}],
        },
    ).json()
    premature = client.post(
        f"/api/purchase-orders/{po['id']}/receive",
        json={"lines": [{"line_id": po["lines"][0]["id"], "quantity": 5}]},
    )
    assert premature.status_code == 409

    client.post(f"/api/purchase-orders/{po['id']}/approve")
    over_receipt = client.post(
        f"/api/purchase-orders/{po['id']}/receive",
        json={"lines": [{"line_id": po["lines"][0]["id"], "quantity": 6}]},
    )
    assert over_receipt.status_code == 400

    assert client.post("/api/purchase-orders", json={"vendor_id": vendor["id"], "lines": []}).status_code == 422
    assert client.get(f"/api/inventory/items/{item['item_id']}").json()["quantity_on_order"] == 5


def test_deleting_sales_order_releases_commitment(client):
    item = create_item(client, quantity_on_hand=10, unit_cost="1.00")
    so = client.post(
        "/api/sales-orders",
        json={"lines": [{"item_id": item["item_id"], "quantity": 4}]},
    ).json()
    assert client.get(f"/api/inventory/items/{item['item_id']}").json()["quantity_available"] == 6

    assert client.delete(f"/api/sales-orders/{so['id']}").status_code == 204

    assert client.get(f"/api/inventory/items/{item['item_id']}").json()["quantity_available"] == 10
    history = client.get(f"/api/sales-orders/{so['id']}/history").json()
    assert [entry["event_type"] for entry in history] == ["created", "deleted"]
