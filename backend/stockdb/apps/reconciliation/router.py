from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockdb.context import EngineerContext
from stockdb.database import get_db
from stockdb.security import get_current_engineer

from . import schemas, services

router = APIRouter(prefix="/requests", tags=["requests", "stock"])


@router.post("/{request_id}/confirm-receipt", response_model=schemas.ReceiptConfirmationRead)
def confirm_receipt(
    request_id: str,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    confirmation = services.confirm_receipt(db, ctx, request_id)
    return schemas.ReceiptConfirmationRead.model_validate(confirmation)
