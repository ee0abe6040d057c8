from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class OrderEventResponse(BaseModel):
    event_type: str
    event_date: datetime
    previous_state: Optional[dict[str, Any]] = None
    new_state: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
