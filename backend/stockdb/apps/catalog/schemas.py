from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from . import models


class PartCreate(BaseModel):
    id: str
    part_name: str
    total_stock: int = 0
    min_stock: int = 0
    quantity_class: Optional[models.QuantityClassEnum] = None


class PartRead(BaseModel):
    id: str
    part_name: str
    total_stock: int
    min_stock: int
    quantity_class: Optional[models.QuantityClassEnum] = None
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True


class PartLimitRead(BaseModel):
    part_id: str
    quantity_class: models.QuantityClassEnum
    max_quantity: int
