from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)
RateValue = condecimal(max_digits=14, decimal_places=6)


class PurchaseOrderLineCreate(BaseModel):
    item_id: int
    quantity: int = Field(..., gt=0)
    rate: Optional[DecimalValue] = None


class PurchaseOrderLineResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity_ordered: int
    quantity_received: int
    rate: DecimalValue
    closed: bool

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderBase(BaseModel):
    vendor_id: int
    location_id: Optional[int] = None
    order_date: date
    expected_date: Optional[date] = None
    currency: Optional[str] = None
    exchange_rate: Optional[RateValue] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PurchaseOrderCreate(PurchaseOrderBase):
    order_number: Optional[str] = None
    lines: List[PurchaseOrderLineCreate] = Field(..., min_length=1)


class PurchaseOrderUpdate(BaseModel):
    vendor_id: Optional[int] = None
    location_id: Optional[int] = None
    order_date: Optional[date] = None
    expected_date: Optional[date] = None
    currency: Optional[str] = None
    exchange_rate: Optional[RateValue] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    lines: Optional[List[PurchaseOrderLineCreate]] = None


class PurchaseOrderResponse(PurchaseOrderBase):
    id: int
    order_number: str
    status: str
    total: DecimalValue
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    lines: List[PurchaseOrderLineResponse]


class PurchaseOrderCloseRequest(BaseModel):
    reason: Optional[str] = None


class ReceiptLineCreate(BaseModel):
    line_id: int
    quantity: int = Field(..., gt=0)
    unit_cost: Optional[DecimalValue] = None


class ReceiptCreate(BaseModel):
    location_id: Optional[int] = None
    receipt_date: Optional[datetime] = None
    notes: Optional[str] = None
    lines: List[ReceiptLineCreate] = Field(..., min_length=1)


class ReceiptLineResponse(BaseModel):
    id: int
    purchase_order_line_id: int
    item_id: int
    quantity_received: int
    unit_cost: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class ReceiptResponse(BaseModel):
    id: int
    receipt_number: str
    purchase_order_id: int
    location_id: Optional[int] = None
    receipt_date: datetime
    lines: List[ReceiptLineResponse]

    model_config = ConfigDict(from_attributes=True)
