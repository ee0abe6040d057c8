from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from stockledger.db import get_db
from stockledger.events.reversal import PURCHASE_ORDER
from stockledger.events.store import get_order_history
from stockledger.models import PurchaseOrder, PurchaseOrderLine
from stockledger.purchasing import schemas
from stockledger.purchasing.service import (
    approve_purchase_order,
    cancel_purchase_order,
    close_purchase_order,
    create_purchase_order,
    delete_purchase_order,
    po_total,
    receive_purchase_order,
    update_purchase_order,
)
from stockledger.routers.errors import http_error
from stockledger.routers.schemas import OrderEventResponse


router = APIRouter(prefix="/api/purchase-orders", tags=["purchase-orders"])


def _to_detail_response(po: PurchaseOrder) -> schemas.PurchaseOrderResponse:
    return schemas.PurchaseOrderResponse(
        id=po.id,
        order_number=po.order_number,
        vendor_id=po.vendor_id,
        location_id=po.location_id,
        order_date=po.order_date,
        expected_date=po.expected_date,
        currency=po.currency,
        exchange_rate=po.exchange_rate,
        reference=po.reference,
        notes=po.notes,
        status=po.status,
        total=po_total(po),
        created_at=po.created_at,
        updated_at=po.updated_at,
        created_by=po.created_by,
        approved_at=po.approved_at,
        closed_at=po.closed_at,
        lines=[
            schemas.PurchaseOrderLineResponse(
                id=line.id,
                item_id=line.item_id,
                item_name=line.item.name if line.item else f"Item #{line.item_id}",
                quantity_ordered=line.quantity_ordered,
                quantity_received=line.quantity_received or 0,
                rate=line.rate,
                closed=line.closed,
            )
            for line in po.lines
        ],
    )


def _load_purchase_order(db: Session, purchase_order_id: int) -> PurchaseOrder:
    po = (
        db.query(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines).selectinload(PurchaseOrderLine.item))
        .filter(PurchaseOrder.id == purchase_order_id)
        .first()
    )
    if not po:
        raise HTTPException(status_code=404, detail="Purchase order not found.")
    return po


@router.get("", response_model=List[schemas.PurchaseOrderResponse])
def list_purchase_orders(db: Session = Depends(get_db)):
    pos = (
        db.query(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines).selectinload(PurchaseOrderLine.item))
        .order_by(PurchaseOrder.id.desc())
        .all()
    )
    return [_to_detail_response(po) for po in pos]


@router.post("", response_model=schemas.PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
def create_purchase_order_endpoint(payload: schemas.PurchaseOrderCreate, db: Session = Depends(get_db)):
    try:
        po = create_purchase_order(db, payload.model_dump())
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    return _to_detail_response(_load_purchase_order(db, po.id))


@router.get("/{purchase_order_id}", response_model=schemas.PurchaseOrderResponse)
def get_purchase_order_endpoint(purchase_order_id: int, db: Session = Depends(get_db)):
    return _to_detail_response(_load_purchase_order(db, purchase_order_id))


@router.put("/{purchase_order_id}", response_model=schemas.PurchaseOrderResponse)
def update_purchase_order_endpoint(
    purchase_order_id: int,
    payload: schemas.PurchaseOrderUpdate,
    db: Session = Depends(get_db),
):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        update_purchase_order(db, po, payload.model_dump(exclude_unset=True))
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(po)
    return _to_detail_response(po)


@router.delete("/{purchase_order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_purchase_order_endpoint(purchase_order_id: int, db: Session = Depends(get_db)):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        delete_purchase_order(db, po)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{purchase_order_id}/approve", response_model=schemas.PurchaseOrderResponse)
def approve_purchase_order_endpoint(purchase_order_id: int, db: Session = Depends(get_db)):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        approve_purchase_order(db, po)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(po)
    return _to_detail_response(po)


@router.post("/{purchase_order_id}/close", response_model=schemas.PurchaseOrderResponse)
def close_purchase_order_endpoint(
    purchase_order_id: int,
    payload: schemas.PurchaseOrderCloseRequest | None = None,
    db: Session = Depends(get_db),
):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        close_purchase_order(db, po, reason=payload.reason if payload else None)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(po)
    return _to_detail_response(po)


@router.post("/{purchase_order_id}/cancel", response_model=schemas.PurchaseOrderResponse)
def cancel_purchase_order_endpoint(
    purchase_order_id: int,
    payload: schemas.PurchaseOrderCloseRequest | None = None,
    db: Session = Depends(get_db),
):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        cancel_purchase_order(db, po, reason=payload.reason if payload else None)
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(po)
    return _to_detail_response(po)


@router.post(
    "/{purchase_order_id}/receive",
    response_model=schemas.ReceiptResponse,
    status_code=status.HTTP_201_CREATED,
)
def receive_purchase_order_endpoint(
    purchase_order_id: int,
    payload: schemas.ReceiptCreate,
    db: Session = Depends(get_db),
):
    po = _load_purchase_order(db, purchase_order_id)
    try:
        receipt = receive_purchase_order(db, po, payload.model_dump())
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(receipt)
    return receipt


@router.get("/{purchase_order_id}/history", response_model=List[OrderEventResponse])
def purchase_order_history(purchase_order_id: int, db: Session = Depends(get_db)):
    return get_order_history(db, PURCHASE_ORDER, purchase_order_id)
