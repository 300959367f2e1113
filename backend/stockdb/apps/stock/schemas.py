from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EngineerStockRead(BaseModel):
    engineer_id: str
    part_id: str
    part_name: str
    quantity: int
    min_stock: Optional[int] = None
    low_stock_threshold: int
    last_sync: Optional[datetime] = None
    is_low: bool
    is_empty: bool


class MinStockUpdate(BaseModel):
    min_stock: int


class EngineerStockMinRead(BaseModel):
    engineer_id: str
    part_id: str
    quantity: int
    min_stock: Optional[int] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockAdjustmentRead(BaseModel):
    id: str
    engineer_id: str
    engineer_name: Optional[str] = None
    part_id: str
    part_name: Optional[str] = None
    request_id: Optional[str] = None
    previous_quantity: int
    new_quantity: int
    delta: int
    reason: Optional[str] = None
    area_group: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True
