from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from stockdb.context import EngineerContext
from stockdb.database import get_db
from stockdb.security import get_current_engineer

from . import schemas, services

router = APIRouter(prefix="/usage-reports", tags=["usage"])


@router.post("", response_model=schemas.UsageReportRead, status_code=status.HTTP_201_CREATED)
def submit_usage_report(
    payload: schemas.UsageReportCreate,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    if not payload.idempotency_key and idempotency_key:
        payload.idempotency_key = idempotency_key
    return services.submit_usage_report(
        db,
        ctx,
        so_number=payload.so_number,
        items=payload.items,
        description=payload.description,
        idempotency_key=payload.idempotency_key,
    )


@router.get("", response_model=List[schemas.UsageReportRead])
def list_usage_reports(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.list_usage_reports(db, ctx, limit=limit)


@router.get("/{report_id}", response_model=schemas.UsageReportRead)
def get_usage_report(
    report_id: str,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.get_usage_report(db, ctx, report_id)
