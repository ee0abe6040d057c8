from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.costing import schemas as costing_schemas
from stockledger.costing.service import (
    calculate_item_valuation,
    calculate_total_inventory_valuation,
    get_average_cost,
    get_layer_summary,
)
from stockledger.db import get_db
from stockledger.errors import NotFoundError
from stockledger.events.store import get_item_events, item_event_to_dict
from stockledger.inventory import schemas
from stockledger.inventory.service import (
    create_inventory_adjustment,
    create_item,
    create_location,
    create_vendor,
    get_backordered_items,
    get_item,
    get_item_quantities,
    total_backordered_value,
)
from stockledger.routers.errors import http_error


router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.post("/items", response_model=schemas.ItemQuantitiesResponse, status_code=status.HTTP_201_CREATED)
def create_item_endpoint(payload: schemas.ItemCreate, db: Session = Depends(get_db)):
    try:
        item = create_item(db, payload.model_dump())
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    return get_item_quantities(db, item.id)


@router.get("/items/{item_id}", response_model=schemas.ItemQuantitiesResponse)
def get_item_endpoint(item_id: int, db: Session = Depends(get_db)):
    try:
        return get_item_quantities(db, item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/items/{item_id}/valuation", response_model=costing_schemas.ItemValuationResponse)
def get_item_valuation_endpoint(item_id: int, db: Session = Depends(get_db)):
    try:
        item = get_item(db, item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return costing_schemas.ItemValuationResponse(
        item_id=item.id,
        quantity_on_hand=item.quantity_on_hand,
        total_value=calculate_item_valuation(db, item.id),
        average_cost=get_average_cost(db, item.id),
        layers=[costing_schemas.CostLayerResponse.model_validate(layer) for layer in get_layer_summary(db, item.id)],
    )


@router.get("/items/{item_id}/events", response_model=List[schemas.ItemEventResponse])
def get_item_events_endpoint(item_id: int, db: Session = Depends(get_db)):
    try:
        get_item(db, item_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return [item_event_to_dict(event) for event in get_item_events(db, item_id)]


@router.post("/adjustments", response_model=schemas.AdjustmentResponse, status_code=status.HTTP_201_CREATED)
def create_adjustment_endpoint(payload: schemas.AdjustmentCreate, db: Session = Depends(get_db)):
    try:
        adjustment = create_inventory_adjustment(db, payload.model_dump())
    except (ValueError, StaleDataError) as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(adjustment)
    return adjustment


@router.get("/backordered", response_model=schemas.BackorderReportResponse)
def get_backordered_endpoint(db: Session = Depends(get_db)):
    return {"items": get_backordered_items(db), "total_backordered_value": total_backordered_value(db)}


@router.get("/valuation", response_model=costing_schemas.InventoryValuationResponse)
def get_total_valuation_endpoint(db: Session = Depends(get_db)):
    return {"total_value": calculate_total_inventory_valuation(db)}


@router.post("/vendors", response_model=schemas.VendorResponse, status_code=status.HTTP_201_CREATED)
def create_vendor_endpoint(payload: schemas.VendorCreate, db: Session = Depends(get_db)):
    vendor = create_vendor(db, payload.model_dump())
    db.commit()
    db.refresh(vendor)
    return vendor


@router.post("/locations", response_model=schemas.LocationResponse, status_code=status.HTTP_201_CREATED)
def create_location_endpoint(payload: schemas.LocationCreate, db: Session = Depends(get_db)):
    try:
        location = create_location(db, payload.model_dump())
    except ValueError as exc:
        raise http_error(db, exc) from exc
    db.commit()
    db.refresh(location)
    return location
