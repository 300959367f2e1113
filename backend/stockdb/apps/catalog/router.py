from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from stockdb.context import EngineerContext
from stockdb.database import get_read_db
from stockdb.security import get_current_context

from . import schemas, services

router = APIRouter(prefix="/parts", tags=["catalog"])


@router.get("", response_model=List[schemas.PartRead])
def list_parts(
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    _ctx: EngineerContext = Depends(get_current_context),
):
    return services.list_parts(db, search=search)


@router.get("/{part_id}/limit", response_model=schemas.PartLimitRead)
def get_part_limit(
    part_id: str,
    db: Session = Depends(get_read_db),
    _ctx: EngineerContext = Depends(get_current_context),
):
    part = services.get_part(db, part_id)
    if part is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found.")
    return schemas.PartLimitRead(
        part_id=part.id,
        quantity_class=services.quantity_class_for(part),
        max_quantity=services.max_quantity_for(part),
    )
