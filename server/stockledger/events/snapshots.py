from stockledger.models import ItemFulfillment, PurchaseOrder, SalesOrder


def purchase_order_snapshot(po: PurchaseOrder) -> dict:
    return {
        "id": po.id,
        "order_number": po.order_number,
        "vendor_id": po.vendor_id,
        "location_id": po.location_id,
        "status": po.status,
        "order_date": po.order_date,
        "expected_date": po.expected_date,
        "currency": po.currency,
        "exchange_rate": po.exchange_rate,
        "reference": po.reference,
        "notes": po.notes,
        "lines": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "quantity_ordered": line.quantity_ordered,
                "quantity_received": line.quantity_received or 0,
                "rate": line.rate,
            }
            for line in po.lines
        ],
    }


def sales_order_snapshot(so: SalesOrder) -> dict:
    return {
        "id": so.id,
        "order_number": so.order_number,
        "customer_name": so.customer_name,
        "status": so.status,
        "order_date": so.order_date,
        "notes": so.notes,
        "lines": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "quantity_ordered": line.quantity_ordered,
                "quantity_committed": line.quantity_committed or 0,
                "quantity_backordered": line.quantity_backordered or 0,
                "quantity_fulfilled": line.quantity_fulfilled or 0,
                "unit_price": line.unit_price,
            }
            for line in so.lines
        ],
    }


def fulfillment_snapshot(fulfillment: ItemFulfillment) -> dict:
    return {
        "id": fulfillment.id,
        "fulfillment_number": fulfillment.fulfillment_number,
        "sales_order_id": fulfillment.sales_order_id,
        "status": fulfillment.status,
        "ship_method": fulfillment.ship_method,
        "tracking_number": fulfillment.tracking_number,
        "lines": [
            {
                "id": line.id,
                "sales_order_line_id": line.sales_order_line_id,
                "item_id": line.item_id,
                "quantity_fulfilled": line.quantity_fulfilled,
                "cost_of_goods_sold": line.cost_of_goods_sold,
            }
            for line in fulfillment.lines
        ],
    }


def snapshot_lines(state: dict | None) -> list[dict]:
    """Lines of a stored snapshot with the item key normalized to ``item_id``.

    Older snapshots wrote ``itemId``.
    """
    lines = []
    for line in (state or {}).get("lines") or []:
        item_id = line.get("item_id", line.get("itemId"))
        if item_id is None:
            continue
        quantity = line.get("quantity_ordered", line.get("quantity", line.get("quantityOrdered", 0)))
        lines.append({**line, "item_id": int(item_id), "quantity_ordered": int(quantity or 0)})
    return lines
