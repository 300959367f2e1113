from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockdb.context import EngineerContext
from stockdb.database import get_db, get_read_db
from stockdb.security import get_current_engineer

from . import schemas, services

router = APIRouter(prefix="/stock", tags=["stock"])


@router.get("/me", response_model=List[schemas.EngineerStockRead])
def my_stock(
    db: Session = Depends(get_read_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.list_engineer_stock(db, engineer_id=ctx.engineer_id)


@router.get("/me/adjustments", response_model=List[schemas.StockAdjustmentRead])
def my_adjustments(
    part_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.list_adjustments(db, engineer_id=ctx.engineer_id, part_id=part_id)


@router.put("/me/{part_id}/min-stock", response_model=schemas.EngineerStockMinRead)
def set_my_min_stock(
    part_id: str,
    payload: schemas.MinStockUpdate,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.set_min_stock(db, engineer_id=ctx.engineer_id, part_id=part_id, min_stock=payload.min_stock)
