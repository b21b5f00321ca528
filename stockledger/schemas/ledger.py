from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StockEventRead(BaseModel):
    id: int
    product_id: int
    shop_id: Optional[int] = None
    action_kind: str
    location: Optional[str] = None
    quantity_before: Optional[int] = None
    quantity_after: Optional[int] = None
    change: int
    reversed: bool
    reversed_at: Optional[datetime] = None
    reversed_by: Optional[str] = None
    timestamp: datetime
    actor_id: str
    details: dict = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class LedgerPage(BaseModel):
    items: List[StockEventRead]
    total: int
    limit: int
    offset: int
