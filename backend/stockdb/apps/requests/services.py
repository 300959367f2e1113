from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from stockdb.apps.catalog import services as catalog_services
from stockdb.apps.events.broker import DataChanged, queue_event
from stockdb.context import EngineerContext
from stockdb.database import run_in_transaction
from stockdb.errors import ConcurrencyConflictError, InvalidStateError, NotFoundError, ValidationError
from . import models, schemas, workflow

logger = logging.getLogger(__name__)

ENTITY_TYPE = "monthly_request"

_PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

ItemInput = Union[schemas.RequestItem, Mapping[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _monotonic_now(*previous: Optional[datetime]) -> datetime:
    """Now, nudged past any earlier lifecycle timestamp so they stay ordered."""
    now = _utcnow()
    known = [_as_aware(value) for value in previous if value is not None]
    if known:
        latest = max(known)
        if now <= latest:
            now = latest + timedelta(microseconds=1)
    return now


def current_period(now: Optional[datetime] = None) -> str:
    return (now or _utcnow()).strftime("%Y-%m")


def validate_period(period: Optional[str]) -> str:
    if period is None or not str(period).strip():
        return current_period()
    value = str(period).strip()
    match = _PERIOD_PATTERN.match(value)
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError(f"Period must be a year-month like 2026-02, got {value!r}.")
    return value


def _item_fields(item: ItemInput) -> tuple[str, Any]:
    if isinstance(item, schemas.RequestItem):
        return item.part_id, item.quantity
    part_id = item.get("partId", item.get("part_id"))
    return part_id, item.get("quantity")


def validate_items(db: Session, items: Sequence[ItemInput]) -> List[Dict[str, Any]]:
    """
    Check a full item list against the catalog as it is right now and return
    the list in storage form ({"partId", "quantity"}).
    """
    if not items:
        raise ValidationError("A request needs at least one item.")

    parsed: List[tuple[str, int]] = []
    seen: set[str] = set()
    for item in items:
        part_id, quantity = _item_fields(item)
        part_id = (str(part_id) if part_id is not None else "").strip()
        if not part_id:
            raise ValidationError("Every item needs a part id.")
        if part_id in seen:
            raise ValidationError(f"Part {part_id} appears more than once in the request.")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity for {part_id} must be a whole number of at least 1.")
        seen.add(part_id)
        parsed.append((part_id, quantity))

    parts = catalog_services.get_parts(db, [part_id for part_id, _ in parsed])
    normalised: List[Dict[str, Any]] = []
    for part_id, quantity in parsed:
        part = parts.get(part_id)
        if part is None:
            raise ValidationError(f"Unknown part {part_id}.")
        cap = catalog_services.max_quantity_for(part)
        if quantity > cap:
            raise ValidationError(f"{part.part_name} is limited to {cap} units per request.")
        normalised.append({"partId": part_id, "quantity": quantity})
    return normalised


def _event(request: models.MonthlyRequest, action: str) -> DataChanged:
    return DataChanged(
        entity_type=ENTITY_TYPE,
        entity_id=request.id,
        action=action,
        engineer_id=request.engineer_id,
        metadata={"status": models.RequestStatusEnum(request.status).value},
    )


def _conditional_update(
    db: Session,
    request: models.MonthlyRequest,
    *,
    expected: models.RequestStatusEnum,
    values: Dict[str, Any],
) -> int:
    """
    UPDATE guarded on the status the caller observed. Returns the row count;
    anything other than 1 means the precondition no longer held.
    """
    result = db.execute(
        update(models.MonthlyRequest)
        .where(
            models.MonthlyRequest.id == request.id,
            models.MonthlyRequest.engineer_id == request.engineer_id,
            models.MonthlyRequest.status == expected,
        )
        .values(**values)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount


def _stored_status(db: Session, request_id: str) -> Optional[models.RequestStatusEnum]:
    value = db.execute(
        select(models.MonthlyRequest.status).where(models.MonthlyRequest.id == request_id)
    ).scalar_one_or_none()
    return models.RequestStatusEnum(value) if value is not None else None


def get_request(db: Session, ctx: EngineerContext, request_id: str) -> models.MonthlyRequest:
    request = (
        db.query(models.MonthlyRequest)
        .filter(
            models.MonthlyRequest.id == request_id,
            models.MonthlyRequest.engineer_id == ctx.engineer_id,
        )
        .populate_existing()
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found.")
    return request


def list_requests(
    db: Session,
    ctx: EngineerContext,
    *,
    status: Optional[models.RequestStatusEnum] = None,
    period: Optional[str] = None,
    include_cancelled: bool = False,
) -> List[models.MonthlyRequest]:
    query = db.query(models.MonthlyRequest).filter(models.MonthlyRequest.engineer_id == ctx.engineer_id)
    if status is not None:
        query = query.filter(models.MonthlyRequest.status == status)
    elif not include_cancelled:
        query = query.filter(models.MonthlyRequest.status != models.RequestStatusEnum.CANCELLED)
    if period:
        query = query.filter(models.MonthlyRequest.period == validate_period(period))
    return query.order_by(models.MonthlyRequest.submitted_at.desc(), models.MonthlyRequest.id.desc()).all()


def create_request(
    db: Session,
    ctx: EngineerContext,
    *,
    items: Sequence[ItemInput],
    period: Optional[str] = None,
) -> models.MonthlyRequest:
    def _create(db: Session) -> models.MonthlyRequest:
        normalised = validate_items(db, items)
        now = _utcnow()
        request = models.MonthlyRequest(
            engineer_id=ctx.engineer_id,
            period=validate_period(period),
            items=normalised,
            status=models.RequestStatusEnum.PENDING,
            submitted_at=now,
            created_at=now,
        )
        db.add(request)
        db.flush()
        queue_event(db, _event(request, "created"))
        logger.info(
            "Request created",
            extra={"request_id": request.id, "engineer_id": ctx.engineer_id, "period": request.period},
        )
        return request

    return run_in_transaction(db, _create)


def edit_request(
    db: Session,
    ctx: EngineerContext,
    request_id: str,
    *,
    items: Sequence[ItemInput],
    period: Optional[str] = None,
) -> models.MonthlyRequest:
    """
    Replace the item list of a pending request. Treated as a re-submission:
    `submitted_at` moves to now.
    """

    def _edit(db: Session) -> models.MonthlyRequest:
        request = get_request(db, ctx, request_id)
        current = models.RequestStatusEnum(request.status)
        if current not in workflow.EDITABLE_STATES:
            raise InvalidStateError(f"Only pending requests can be edited; this one is {current.value}.")
        normalised = validate_items(db, items)
        now = _utcnow()
        values: Dict[str, Any] = {
            "items": normalised,
            "submitted_at": now,
            "last_edited_by": ctx.engineer_id,
            "last_edited_at": now,
        }
        if period is not None:
            values["period"] = validate_period(period)
        if _conditional_update(db, request, expected=current, values=values) != 1:
            raise ConcurrencyConflictError("Request changed while it was being edited.")
        queue_event(db, _event(request, "edited"))
        logger.info("Request edited", extra={"request_id": request.id, "engineer_id": ctx.engineer_id})
        return request

    return run_in_transaction(db, _edit)


def cancel_request(db: Session, ctx: EngineerContext, request_id: str) -> models.MonthlyRequest:
    """
    Soft-cancel a request that has not been delivered yet.

    The update is guarded on the status read just before it, so a cancel can
    never overwrite a delivery or a confirmation that landed in between. The
    stored status is re-read afterwards and must be `cancelled`.
    """

    def _cancel(db: Session) -> models.MonthlyRequest:
        request = get_request(db, ctx, request_id)
        current = models.RequestStatusEnum(request.status)
        workflow.assert_transition(current, models.RequestStatusEnum.CANCELLED)
        now = _monotonic_now(request.submitted_at, request.reviewed_at)
        values = {"status": models.RequestStatusEnum.CANCELLED, "cancelled_at": now}
        if _conditional_update(db, request, expected=current, values=values) != 1:
            raise ConcurrencyConflictError("Request changed while it was being cancelled.")
        stored = _stored_status(db, request.id)
        if stored is not None and stored != models.RequestStatusEnum.CANCELLED:
            raise InvalidStateError(f"Cancellation did not take effect; request is {stored.value}.")
        queue_event(db, _event(request, "cancelled"))
        logger.info(
            "Request cancelled",
            extra={"request_id": request.id, "engineer_id": ctx.engineer_id, "previous_status": current.value},
        )
        return request

    return run_in_transaction(db, _cancel)


def purge_cancelled_request(db: Session, ctx: EngineerContext, request_id: str) -> None:
    """Optional cleanup: hard-delete a request that is already cancelled."""

    def _purge(db: Session) -> None:
        request = get_request(db, ctx, request_id)
        if models.RequestStatusEnum(request.status) != models.RequestStatusEnum.CANCELLED:
            raise InvalidStateError("Only cancelled requests can be deleted.")
        result = db.execute(
            delete(models.MonthlyRequest)
            .where(
                models.MonthlyRequest.id == request.id,
                models.MonthlyRequest.engineer_id == ctx.engineer_id,
                models.MonthlyRequest.status == models.RequestStatusEnum.CANCELLED,
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError("Request changed while it was being deleted.")
        queue_event(
            db,
            DataChanged(entity_type=ENTITY_TYPE, entity_id=request_id, action="deleted", engineer_id=ctx.engineer_id),
        )

    run_in_transaction(db, _purge)


def complete_request(db: Session, request: models.MonthlyRequest) -> datetime:
    """
    Flip `delivered -> completed`. This conditional update is the single point
    that decides which confirmation wins; callers must hold it in the same
    transaction as the stock credit. Does not commit.
    """
    workflow.assert_transition(models.RequestStatusEnum(request.status), models.RequestStatusEnum.COMPLETED)
    confirmed_at = _monotonic_now(request.submitted_at, request.reviewed_at, request.delivered_at)
    values = {"status": models.RequestStatusEnum.COMPLETED, "confirmed_at": confirmed_at}
    if _conditional_update(db, request, expected=models.RequestStatusEnum.DELIVERED, values=values) != 1:
        raise InvalidStateError("Request is no longer awaiting confirmation.")
    return confirmed_at


def aggregate_items(items: Optional[Iterable[Mapping[str, Any]]]) -> Dict[str, int]:
    """Sum quantities per part; non-positive or malformed lines are ignored."""
    totals: Dict[str, int] = {}
    for item in items or []:
        part_id = item.get("partId", item.get("part_id"))
        quantity = item.get("quantity")
        if not part_id or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            continue
        totals[str(part_id)] = totals.get(str(part_id), 0) + quantity
    return totals
