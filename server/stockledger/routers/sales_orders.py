from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from stockledger.db import get_db
from stockledger.events.reversal import SALES_ORDER
from stockledger.events.store import get_order_history
from stockledger.models import SalesOrder, SalesOrderLine
from stockledger.routers.errors import http_error
from stockledger.routers.schemas import OrderEventResponse
from stockledger.sales import schemas
from stockledger.sales.fulfillment import fulfill_sales_order
from stockledger.sales.service import (
    approve_sales_order,
    cancel_sales_order,
    close_sales_order,
    create_sales_order,
    delete_sales_order,
    so_total,
    update_sales_order,
)


router = APIRouter(prefix="/api/sales-orders", tags=["sales-orders"])


def _to_detail_response(so: SalesOrder) -> schemas.SalesOrderResponse:
    return schemas.SalesOrderResponse(
        id=so.id,
        order_number=so.order_number,
        customer_name=so.customer_name,
        status=so.status,
        order_date=so.order_date,
        notes=so.notes,
        total=so_total(so),
        created_at=so.created_at,
        updated_at=so.updated_at,
        created_by=so.created_by,
        lines=[
            schemas.SalesOrderLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else f"Item #{line.item_id}",
                quantity_ordered=line.quantity_ordered,
                quantity_committed=line.quantity_committed or 0,
                quantity_backordered=line.quantity_backordered or 0,
                quantity_fulfilled=line.quantity_fulfilled or 0,
                unit_price=line.unit_price,
            )
            for line in so.lines
        ],
    )


def _load_sales_order(db: Session, sales_order_id: int) -> SalesOrder:
    so = (
        db.query(SalesOrder)
        .options(selectinload(SalesOrder.lines).selectinload(SalesOrderLine.item))
        .filter(SalesOrder.id == sales_order_id)
        .first()
    )
    if not so:
        raise HTTPException(status_code=404, detail="Sales order not found.")
    return so


@router.get("", response_model=List[schemas.SalesOrderResponse])
def list_sales_orders(db: Session = Depends(get_db)):
    orders = (
        db.query(SalesOrder)
        .options(selectinload(SalesOrder.lines).selectinload(SalesOrderLine.item))
        .order_by(SalesOrder.id.desc())
        .all()
    )
    return [_to_detail_response(so) for so in orders]


@router.post("", response_model=schemas.SalesOrderResponse, status_code=status.HTTP_201_CREATED)
def create_sales_order_endpoint(payload: schemas.SalesOrderCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    if data.get("status") is None:
        data.pop("status", None)
    try:
        so = create_sales_order(db, data)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    return _to_detail_response(_load_sales_order(db, so.id))


@router.get("/{sales_order_id}", response_model=schemas.SalesOrderResponse)
def get_sales_order_endpoint(sales_order_id: int, db: Session = Depends(get_db)):
    return _to_detail_response(_load_sales_order(db, sales_order_id))


@router.put("/{sales_order_id}", response_model=schemas.SalesOrderResponse)
def update_sales_order_endpoint(
    sales_order_id: int,
    payload: schemas.SalesOrderUpdate,
    db: Session = Depends(get_db),
):
    so = _load_sales_order(db, sales_order_id)
    try:
        update_sales_order(db, so, payload.model_dump(exclude_unset=True))
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(so)
    return _to_detail_response(so)


@router.delete("/{sales_order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sales_order_endpoint(sales_order_id: int, db: Session = Depends(get_db)):
    so = _load_sales_order(db, sales_order_id)
    try:
        delete_sales_order(db, so)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{sales_order_id}/approve", response_model=schemas.SalesOrderResponse)
def approve_sales_order_endpoint(sales_order_id: int, db: Session = Depends(get_db)):
    so = _load_sales_order(db, sales_order_id)
    try:
        approve_sales_order(db, so)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(so)
    return _to_detail_response(so)


@router.post("/{sales_order_id}/cancel", response_model=schemas.SalesOrderResponse)
def cancel_sales_order_endpoint(
    sales_order_id: int,
    payload: schemas.SalesOrderCancelRequest | None = None,
    db: Session = Depends(get_db),
):
    so = _load_sales_order(db, sales_order_id)
    try:
        cancel_sales_order(db, so, reason=payload.reason if payload else None)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(so)
    return _to_detail_response(so)


@router.post("/{sales_order_id}/close", response_model=schemas.SalesOrderResponse)
def close_sales_order_endpoint(sales_order_id: int, db: Session = Depends(get_db)):
    so = _load_sales_order(db, sales_order_id)
    try:
        close_sales_order(db, so)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(so)
    return _to_detail_response(so)


@router.post(
    "/{sales_order_id}/fulfill",
    response_model=schemas.FulfillmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def fulfill_sales_order_endpoint(
    sales_order_id: int,
    payload: schemas.FulfillmentCreate,
    db: Session = Depends(get_db),
):
    so = _load_sales_order(db, sales_order_id)
    try:
        fulfillment = fulfill_sales_order(db, so, payload.model_dump())
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(fulfillment)
    return fulfillment


@router.get("/{sales_order_id}/history", response_model=List[OrderEventResponse])
def sales_order_history(sales_order_id: int, db: Session = Depends(get_db)):
    return get_order_history(db, SALES_ORDER, sales_order_id)
