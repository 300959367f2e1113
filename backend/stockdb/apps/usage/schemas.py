from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class UsageItem(BaseModel):
    part_id: str = Field(..., alias="partId")
    part_name: Optional[str] = Field(None, alias="partName")
    quantity: int

    class Config:
        populate_by_name = True


class UsageReportCreate(BaseModel):
    so_number: str
    description: Optional[str] = None
    items: List[UsageItem] = Field(default_factory=list)
    idempotency_key: Optional[str] = None


class UsageReportRead(BaseModel):
    id: str
    engineer_id: str
    so_number: str
    description: Optional[str] = None
    items: List[UsageItem]
    date: datetime

    class Config:
        from_attributes = True
        populate_by_name = True
