from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class ItemCreate(BaseModel):
    sku: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    is_active: bool = True
    quantity_on_hand: int = Field(0, ge=0)
    unit_cost: Optional[DecimalValue] = None


class ItemQuantitiesResponse(BaseModel):
    item_id: int
    sku: Optional[str] = None
    name: str
    quantity_on_hand: int
    quantity_on_order: int
    quantity_committed: int
    quantity_backordered: int
    quantity_available: int
    projected_available: int


class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    default_currency: str = "USD"
    is_active: bool = True


class VendorResponse(VendorCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class LocationCreate(BaseModel):
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    is_active: bool = True


class LocationResponse(LocationCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class AdjustmentLineCreate(BaseModel):
    item_id: int
    quantity_change: int
    unit_cost: Optional[DecimalValue] = None
    notes: Optional[str] = None


class AdjustmentCreate(BaseModel):
    reason: str = Field(..., min_length=1)
    memo: Optional[str] = None
    location_id: Optional[int] = None
    lines: List[AdjustmentLineCreate] = Field(..., min_length=1)


class AdjustmentLineResponse(BaseModel):
    id: int
    item_id: int
    quantity_change: int
    quantity_before: Optional[int] = None
    quantity_after: Optional[int] = None
    unit_cost: Optional[DecimalValue] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdjustmentResponse(BaseModel):
    id: int
    adjustment_number: str
    reason: str
    memo: Optional[str] = None
    location_id: Optional[int] = None
    status: str
    posted_at: Optional[datetime] = None
    lines: List[AdjustmentLineResponse]

    model_config = ConfigDict(from_attributes=True)


class AppliedEffectResponse(BaseModel):
    on_hand: int
    on_order: int
    committed: int
    backordered: int
    cost: DecimalValue

    model_config = ConfigDict(from_attributes=True)


class ItemEventResponse(BaseModel):
    id: int
    item_id: int
    event_type: str
    quantity_change: int
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    event_date: datetime
    effect: Optional[AppliedEffectResponse] = None
    metadata: Optional[dict[str, Any]] = None


class BackorderedOrderLine(BaseModel):
    sales_order_id: int
    order_number: str
    customer_name: Optional[str] = None
    line_id: int
    quantity_backordered: int


class BackorderedItemResponse(BaseModel):
    item_id: int
    sku: Optional[str] = None
    name: str
    quantity_backordered: int
    quantity_on_order: int
    quantity_available: int
    orders: List[BackorderedOrderLine]


class BackorderReportResponse(BaseModel):
    items: List[BackorderedItemResponse]
    total_backordered_value: DecimalValue
