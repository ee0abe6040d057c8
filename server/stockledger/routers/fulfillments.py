from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockledger.db import get_db
from stockledger.events.reversal import ITEM_FULFILLMENT
from stockledger.events.store import get_order_history
from stockledger.models import ItemFulfillment
from stockledger.routers.errors import http_error
from stockledger.routers.schemas import OrderEventResponse
from stockledger.sales import schemas
from stockledger.sales.fulfillment import pack_fulfillment, ship_fulfillment


router = APIRouter(prefix="/api/fulfillments", tags=["fulfillments"])


def _load_fulfillment(db: Session, fulfillment_id: int) -> ItemFulfillment:
    fulfillment = db.get(ItemFulfillment, fulfillment_id)
    if not fulfillment:
        raise HTTPException(status_code=404, detail="Item fulfillment not found.")
    return fulfillment


@router.get("/{fulfillment_id}", response_model=schemas.FulfillmentResponse)
def get_fulfillment_endpoint(fulfillment_id: int, db: Session = Depends(get_db)):
    return _load_fulfillment(db, fulfillment_id)


@router.post("/{fulfillment_id}/pack", response_model=schemas.FulfillmentResponse)
def pack_fulfillment_endpoint(fulfillment_id: int, db: Session = Depends(get_db)):
    fulfillment = _load_fulfillment(db, fulfillment_id)
    try:
        pack_fulfillment(fulfillment)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(fulfillment)
    return fulfillment


@router.post("/{fulfillment_id}/ship", response_model=schemas.FulfillmentResponse)
def ship_fulfillment_endpoint(
    fulfillment_id: int,
    payload: schemas.ShipRequest | None = None,
    db: Session = Depends(get_db),
):
    fulfillment = _load_fulfillment(db, fulfillment_id)
    try:
        ship_fulfillment(db, fulfillment, payload.model_dump() if payload else None)
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(fulfillment)
    return fulfillment


@router.get("/{fulfillment_id}/history", response_model=List[OrderEventResponse])
def fulfillment_history(fulfillment_id: int, db: Session = Depends(get_db)):
    return get_order_history(db, ITEM_FULFILLMENT, fulfillment_id)
