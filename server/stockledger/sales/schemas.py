from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class SalesOrderLineCreate(BaseModel):
    item_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Optional[DecimalValue] = None


class SalesOrderLineResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity_ordered: int
    quantity_committed: int
    quantity_backordered: int
    quantity_fulfilled: int
    unit_price: Optional[DecimalValue] = None


class SalesOrderCreate(BaseModel):
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    order_date: Optional[date] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    lines: List[SalesOrderLineCreate] = Field(..., min_length=1)


class SalesOrderUpdate(BaseModel):
    customer_name: Optional[str] = None
    order_date: Optional[date] = None
    notes: Optional[str] = None
    lines: Optional[List[SalesOrderLineCreate]] = None


class SalesOrderResponse(BaseModel):
    id: int
    order_number: str
    customer_name: Optional[str] = None
    status: str
    order_date: date
    notes: Optional[str] = None
    total: DecimalValue
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    lines: List[SalesOrderLineResponse]


class SalesOrderCancelRequest(BaseModel):
    reason: Optional[str] = None


class FulfillmentLineCreate(BaseModel):
    line_id: int
    quantity: int = Field(..., gt=0)


class FulfillmentCreate(BaseModel):
    location_id: Optional[int] = None
    fulfillment_date: Optional[datetime] = None
    ship_method: Optional[str] = None
    notes: Optional[str] = None
    lines: List[FulfillmentLineCreate] = Field(..., min_length=1)


class FulfillmentLineResponse(BaseModel):
    id: int
    sales_order_line_id: int
    item_id: int
    quantity_fulfilled: int
    cost_of_goods_sold: Optional[DecimalValue] = None

    model_config = ConfigDict(from_attributes=True)


class FulfillmentResponse(BaseModel):
    id: int
    fulfillment_number: str
    sales_order_id: int
    status: str
    location_id: Optional[int] = None
    fulfillment_date: datetime
    ship_method: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    cost_of_goods_sold: DecimalValue
    lines: List[FulfillmentLineResponse]

    model_config = ConfigDict(from_attributes=True)


class ShipRequest(BaseModel):
    tracking_number: Optional[str] = None
    ship_method: Optional[str] = None
