from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)


class CostLayerResponse(BaseModel):
    id: int
    layer_type: str
    location_id: Optional[int] = None
    quantity_received: int
    quantity_remaining: int
    unit_cost: DecimalValue
    receipt_date: datetime

    model_config = ConfigDict(from_attributes=True)


class ItemValuationResponse(BaseModel):
    item_id: int
    quantity_on_hand: int
    total_value: DecimalValue
    average_cost: Optional[DecimalValue] = None
    layers: List[CostLayerResponse]


class InventoryValuationResponse(BaseModel):
    total_value: DecimalValue
