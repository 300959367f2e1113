from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from . import models


class RequestItem(BaseModel):
    part_id: str = Field(..., alias="partId")
    quantity: int

    class Config:
        populate_by_name = True


class RequestCreate(BaseModel):
    period: Optional[str] = Field(None, description="Year-month, e.g. 2026-02. Defaults to the current month.")
    items: List[RequestItem] = Field(default_factory=list)


class RequestUpdate(BaseModel):
    period: Optional[str] = None
    items: List[RequestItem] = Field(default_factory=list)


class RequestRead(BaseModel):
    id: str
    engineer_id: str
    period: str
    items: List[RequestItem]
    status: models.RequestStatusEnum
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    delivered_by: Optional[str] = None
    delivered_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    last_edited_by: Optional[str] = None
    last_edited_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        populate_by_name = True
