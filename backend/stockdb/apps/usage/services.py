from __future__ import annotations

import hashlib
import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from stockdb.apps.catalog import services as catalog_services
from stockdb.apps.events.broker import DataChanged, queue_event
from stockdb.apps.stock import services as stock_services
from stockdb.context import EngineerContext
from stockdb.database import run_in_transaction
from stockdb.errors import InsufficientStockError, NotFoundError, ValidationError
from . import models, schemas

logger = logging.getLogger(__name__)

ENTITY_TYPE = "usage_report"

SO_NUMBER_MIN_DIGITS = 8  # YYYYMMDD prefix
SO_NUMBER_MAX_DIGITS = 20
_SO_NUMBER_PATTERN = re.compile(rf"^[0-9]{{{SO_NUMBER_MIN_DIGITS},{SO_NUMBER_MAX_DIGITS}}}$")

ItemInput = Union[schemas.UsageItem, Mapping[str, Any]]


def has_valid_date_prefix(so_number: str) -> bool:
    prefix = so_number[:SO_NUMBER_MIN_DIGITS]
    if len(prefix) != SO_NUMBER_MIN_DIGITS or not prefix.isdigit():
        return False
    try:
        date(int(prefix[:4]), int(prefix[4:6]), int(prefix[6:8]))
    except ValueError:
        return False
    return True


def validate_so_number(so_number: Optional[str]) -> str:
    value = (so_number or "").strip()
    if not value:
        raise ValidationError("SO / ticket number is required.")
    if not _SO_NUMBER_PATTERN.match(value):
        raise ValidationError(
            f"SO / ticket number must be {SO_NUMBER_MIN_DIGITS}-{SO_NUMBER_MAX_DIGITS} digits (e.g. 20260217)."
        )
    if not has_valid_date_prefix(value):
        raise ValidationError("The first 8 digits of the SO / ticket number must be a valid YYYYMMDD date.")
    return value


def _item_fields(item: ItemInput) -> Tuple[Any, Optional[str], Any]:
    if isinstance(item, schemas.UsageItem):
        return item.part_id, item.part_name, item.quantity
    return (
        item.get("partId", item.get("part_id")),
        item.get("partName", item.get("part_name")),
        item.get("quantity"),
    )


def _normalise_items(items: Sequence[ItemInput]) -> Tuple[Dict[str, int], Dict[str, str]]:
    if not items:
        raise ValidationError("A usage report needs at least one item.")
    quantities: Dict[str, int] = {}
    supplied_names: Dict[str, str] = {}
    for item in items:
        part_id, part_name, quantity = _item_fields(item)
        part_id = (str(part_id) if part_id is not None else "").strip()
        if not part_id:
            raise ValidationError("Every item needs a part id.")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity for {part_id} must be a whole number of at least 1.")
        # Repeated lines for one part are merged.
        quantities[part_id] = quantities.get(part_id, 0) + quantity
        if part_name and part_name.strip():
            supplied_names.setdefault(part_id, part_name.strip())
    return quantities, supplied_names


def _hash_payload(payload: dict) -> str:
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


def _find_by_idempotency_key(db: Session, *, engineer_id: str, key: str) -> Optional[models.UsageReport]:
    return (
        db.query(models.UsageReport)
        .filter(
            models.UsageReport.engineer_id == engineer_id,
            models.UsageReport.idempotency_key == key,
        )
        .first()
    )


def submit_usage_report(
    db: Session,
    ctx: EngineerContext,
    *,
    so_number: str,
    items: Sequence[ItemInput],
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> models.UsageReport:
    """
    Record consumed parts and debit the engineer's stock in one transaction.

    A report row only survives if every debit applied. With an idempotency
    key, a repeated submission of the same payload returns the original report
    without debiting again.
    """
    so_value = validate_so_number(so_number)
    quantities, supplied_names = _normalise_items(items)
    note = (description or "").strip() or None
    key = (idempotency_key or "").strip() or None
    payload_hash = _hash_payload({"so_number": so_value, "description": note, "items": quantities})

    def _submit(db: Session) -> models.UsageReport:
        if key:
            existing = _find_by_idempotency_key(db, engineer_id=ctx.engineer_id, key=key)
            if existing is not None:
                if existing.payload_hash != payload_hash:
                    raise ValidationError("Idempotency key reuse with different payload.")
                return existing

        catalog_names = catalog_services.part_names(db, quantities)
        names = {
            part_id: catalog_names.get(part_id) or supplied_names.get(part_id) or part_id
            for part_id in quantities
        }

        available = stock_services.snapshot(db, engineer_id=ctx.engineer_id, part_ids=quantities)
        for part_id, requested in quantities.items():
            if requested > available[part_id]:
                raise InsufficientStockError(part_id, requested, available[part_id], part_name=names[part_id])

        report = models.UsageReport(
            engineer_id=ctx.engineer_id,
            so_number=so_value,
            description=note,
            items=[
                {"partId": part_id, "partName": names[part_id], "quantity": quantity}
                for part_id, quantity in quantities.items()
            ],
            idempotency_key=key,
            payload_hash=payload_hash,
        )
        db.add(report)
        db.flush()

        # Re-checks sufficiency itself; losing a race here rolls the report back too.
        stock_services.debit(db, engineer_id=ctx.engineer_id, deltas=quantities, part_names=names)

        queue_event(
            db,
            DataChanged(
                entity_type=ENTITY_TYPE,
                entity_id=report.id,
                action="created",
                engineer_id=ctx.engineer_id,
                metadata={"so_number": so_value},
            ),
        )
        queue_event(
            db,
            DataChanged(
                entity_type="engineer_stock",
                entity_id=ctx.engineer_id,
                action="debited",
                engineer_id=ctx.engineer_id,
                metadata={"usage_report_id": report.id, "parts": sorted(quantities)},
            ),
        )
        logger.info(
            "Usage report submitted",
            extra={"usage_report_id": report.id, "engineer_id": ctx.engineer_id, "so_number": so_value},
        )
        return report

    return run_in_transaction(db, _submit)


def get_usage_report(db: Session, ctx: EngineerContext, report_id: str) -> models.UsageReport:
    report = (
        db.query(models.UsageReport)
        .filter(
            models.UsageReport.id == report_id,
            models.UsageReport.engineer_id == ctx.engineer_id,
        )
        .first()
    )
    if report is None:
        raise NotFoundError("Usage report not found.")
    return report


def list_usage_reports(db: Session, ctx: EngineerContext, *, limit: int = 50) -> List[models.UsageReport]:
    return (
        db.query(models.UsageReport)
        .filter(models.UsageReport.engineer_id == ctx.engineer_id)
        .order_by(models.UsageReport.date.desc(), models.UsageReport.id.desc())
        .limit(limit)
        .all()
    )
