from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AlertRead(BaseModel):
    id: int
    kind: str
    severity: str
    title: str
    message: str
    product_id: Optional[int] = None
    shop_id: Optional[int] = None
    user_id: Optional[str] = None
    is_read: bool
    is_resolved: bool
    read_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="context")
    created_at: datetime
    urgency_score: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class AlertPagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AlertSummary(BaseModel):
    total: int
    unread: int
    unresolved: int
    critical: int


class AlertListResponse(BaseModel):
    items: List[AlertRead]
    pagination: AlertPagination
    summary: AlertSummary


class AlertSweepResult(BaseModel):
    products: int
    created: int
    resolved: int


class MarkAllReadResult(BaseModel):
    updated: int
