from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockdb.context import EngineerContext
from stockdb.database import get_db
from stockdb.security import get_current_engineer

from . import models, schemas, services

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=schemas.RequestRead, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: schemas.RequestCreate,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.create_request(db, ctx, items=payload.items, period=payload.period)


@router.get("", response_model=List[schemas.RequestRead])
def list_requests(
    status_filter: Optional[models.RequestStatusEnum] = Query(None, alias="status"),
    period: Optional[str] = None,
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.list_requests(
        db,
        ctx,
        status=status_filter,
        period=period,
        include_cancelled=include_cancelled,
    )


@router.get("/{request_id}", response_model=schemas.RequestRead)
def get_request(
    request_id: str,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.get_request(db, ctx, request_id)


@router.put("/{request_id}", response_model=schemas.RequestRead)
def edit_request(
    request_id: str,
    payload: schemas.RequestUpdate,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.edit_request(db, ctx, request_id, items=payload.items, period=payload.period)


@router.post("/{request_id}/cancel", response_model=schemas.RequestRead)
def cancel_request(
    request_id: str,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    return services.cancel_request(db, ctx, request_id)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cancelled_request(
    request_id: str,
    db: Session = Depends(get_db),
    ctx: EngineerContext = Depends(get_current_engineer),
):
    services.purge_cancelled_request(db, ctx, request_id)
