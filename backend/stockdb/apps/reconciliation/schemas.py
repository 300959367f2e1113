from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel

from stockdb.apps.requests.schemas import RequestRead
from stockdb.apps.stock.schemas import StockAdjustmentRead


class ReceiptConfirmationRead(BaseModel):
    request: RequestRead
    confirmed_at: datetime
    adjustments: List[StockAdjustmentRead]

    class Config:
        from_attributes = True
