"""
Stock ledger operations.

All writes are conditional: a credit is a compare-and-set on the quantity it
read, a debit only applies while `quantity >= requested`. Neither commits;
callers run them inside `stockdb.database.unit_of_work` so that a failure on
any part rolls back the whole batch.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stockdb.apps.catalog import models as catalog_models
from stockdb.apps.events.broker import DataChanged, queue_event
from stockdb.database import run_in_transaction
from stockdb.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError
from . import models, schemas

logger = logging.getLogger(__name__)

STOCK_CAS_MAX_ATTEMPTS = int(os.getenv("STOCK_CAS_MAX_ATTEMPTS", "5"))

# Low-stock threshold when neither the ledger row nor the catalog sets one.
LOW_STOCK_THRESHOLD = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalise_deltas(deltas: Mapping[str, int]) -> Dict[str, int]:
    if not deltas:
        raise ValidationError("At least one part quantity is required.")
    normalised: Dict[str, int] = {}
    for part_id, quantity in deltas.items():
        if not part_id:
            raise ValidationError("Part id is required.")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity for {part_id} must be a positive integer.")
        normalised[str(part_id)] = quantity
    return normalised


def _current_quantity(db: Session, *, engineer_id: str, part_id: str) -> Optional[int]:
    return db.execute(
        select(models.EngineerStock.quantity).where(
            models.EngineerStock.engineer_id == engineer_id,
            models.EngineerStock.part_id == part_id,
        )
    ).scalar_one_or_none()


def snapshot(db: Session, *, engineer_id: str, part_ids: Iterable[str]) -> Dict[str, int]:
    """
    Current quantities for the given parts; parts with no ledger row read as 0.

    Advisory only: the writes in `credit` and `debit` re-check their own
    preconditions.
    """
    ids = list(dict.fromkeys(part_ids))
    if not ids:
        return {}
    rows = db.execute(
        select(models.EngineerStock.part_id, models.EngineerStock.quantity).where(
            models.EngineerStock.engineer_id == engineer_id,
            models.EngineerStock.part_id.in_(ids),
        )
    ).all()
    quantities = {part_id: 0 for part_id in ids}
    for part_id, quantity in rows:
        quantities[part_id] = quantity
    return quantities


def _apply_credit(
    db: Session,
    *,
    engineer_id: str,
    part_id: str,
    delta: int,
    now: datetime,
) -> Tuple[int, int]:
    for attempt in range(1, STOCK_CAS_MAX_ATTEMPTS + 1):
        current = _current_quantity(db, engineer_id=engineer_id, part_id=part_id)
        if current is None:
            # First credit creates the row; a concurrent insert fails the
            # flush with IntegrityError, which unit_of_work turns into a conflict.
            db.add(
                models.EngineerStock(
                    engineer_id=engineer_id,
                    part_id=part_id,
                    quantity=delta,
                    last_sync=now,
                    created_at=now,
                    updated_at=now,
                )
            )
            db.flush()
            return 0, delta

        result = db.execute(
            update(models.EngineerStock)
            .where(
                models.EngineerStock.engineer_id == engineer_id,
                models.EngineerStock.part_id == part_id,
                models.EngineerStock.quantity == current,
            )
            .values(quantity=current + delta, last_sync=now, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 1:
            return current, current + delta
        logger.warning(
            "Stock credit lost compare-and-set race",
            extra={"engineer_id": engineer_id, "part_id": part_id, "attempt": attempt},
        )
    raise ConcurrencyConflictError(
        f"Could not credit {part_id} after {STOCK_CAS_MAX_ATTEMPTS} attempts; retry the operation."
    )


def credit(
    db: Session,
    *,
    engineer_id: str,
    deltas: Mapping[str, int],
    reason: str,
    request_id: Optional[str] = None,
    engineer_name: Optional[str] = None,
    area_group: Optional[str] = None,
    part_names: Optional[Mapping[str, str]] = None,
) -> List[models.StockAdjustment]:
    """
    Increase ledger quantities and append one adjustment row per part.
    """
    quantities = _normalise_deltas(deltas)
    names = dict(part_names or {})
    now = _utcnow()
    adjustments: List[models.StockAdjustment] = []
    # Fixed order keeps row locks acquired in the same sequence across batches.
    for part_id in sorted(quantities):
        delta = quantities[part_id]
        previous, new = _apply_credit(db, engineer_id=engineer_id, part_id=part_id, delta=delta, now=now)
        adjustment = models.StockAdjustment(
            engineer_id=engineer_id,
            engineer_name=engineer_name,
            part_id=part_id,
            part_name=names.get(part_id, part_id),
            request_id=request_id,
            previous_quantity=previous,
            new_quantity=new,
            delta=delta,
            reason=reason,
            area_group=area_group,
            timestamp=now,
        )
        db.add(adjustment)
        adjustments.append(adjustment)
        logger.info(
            "Stock credited",
            extra={
                "engineer_id": engineer_id,
                "part_id": part_id,
                "previous_quantity": previous,
                "new_quantity": new,
                "request_id": request_id,
            },
        )
    db.flush()
    return adjustments


def debit(
    db: Session,
    *,
    engineer_id: str,
    deltas: Mapping[str, int],
    part_names: Optional[Mapping[str, str]] = None,
) -> Dict[str, int]:
    """
    Decrease ledger quantities, all or nothing.

    Each part is a conditional update that only applies while enough stock is
    held. The first part that cannot be covered raises InsufficientStockError;
    earlier parts of the batch are undone by the caller's rollback.
    Returns the resulting quantities.
    """
    quantities = _normalise_deltas(deltas)
    names = dict(part_names or {})
    now = _utcnow()
    for part_id in sorted(quantities):
        requested = quantities[part_id]
        result = db.execute(
            update(models.EngineerStock)
            .where(
                models.EngineerStock.engineer_id == engineer_id,
                models.EngineerStock.part_id == part_id,
                models.EngineerStock.quantity >= requested,
            )
            .values(
                quantity=models.EngineerStock.quantity - requested,
                last_sync=now,
                updated_at=now,
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            available = _current_quantity(db, engineer_id=engineer_id, part_id=part_id) or 0
            logger.info(
                "Stock debit refused",
                extra={"engineer_id": engineer_id, "part_id": part_id, "requested": requested, "available": available},
            )
            raise InsufficientStockError(part_id, requested, available, part_name=names.get(part_id))
    db.flush()
    remaining = snapshot(db, engineer_id=engineer_id, part_ids=quantities.keys())
    logger.info("Stock debited", extra={"engineer_id": engineer_id, "quantities": quantities})
    return remaining


def low_stock_threshold(own_min_stock: Optional[int], catalog_min_stock: Optional[int]) -> int:
    """The engineer's own minimum, then a non-zero catalog minimum, then LOW_STOCK_THRESHOLD."""
    if own_min_stock is not None:
        return own_min_stock
    if catalog_min_stock:
        return catalog_min_stock
    return LOW_STOCK_THRESHOLD


def list_engineer_stock(db: Session, *, engineer_id: str) -> List[schemas.EngineerStockRead]:
    rows = (
        db.query(models.EngineerStock, catalog_models.Part.part_name, catalog_models.Part.min_stock)
        .outerjoin(catalog_models.Part, catalog_models.Part.id == models.EngineerStock.part_id)
        .filter(models.EngineerStock.engineer_id == engineer_id)
        .order_by(models.EngineerStock.part_id.asc())
        .all()
    )
    items: List[schemas.EngineerStockRead] = []
    for stock, part_name, catalog_min_stock in rows:
        threshold = low_stock_threshold(stock.min_stock, catalog_min_stock)
        items.append(
            schemas.EngineerStockRead(
                engineer_id=stock.engineer_id,
                part_id=stock.part_id,
                part_name=part_name or stock.part_id,
                quantity=stock.quantity,
                min_stock=stock.min_stock,
                low_stock_threshold=threshold,
                last_sync=stock.last_sync,
                is_low=0 < stock.quantity <= threshold,
                is_empty=stock.quantity == 0,
            )
        )
    return items


def set_min_stock(db: Session, *, engineer_id: str, part_id: str, min_stock: int) -> models.EngineerStock:
    """
    Set the engineer's own low-stock threshold for a part they hold.

    Only `min_stock` is written: the quantity and the adjustment log are left
    alone.
    """
    if isinstance(min_stock, bool) or not isinstance(min_stock, int) or min_stock < 0:
        raise ValidationError("Minimum stock must be a whole number of at least 0.")

    def _set(db: Session) -> models.EngineerStock:
        result = db.execute(
            update(models.EngineerStock)
            .where(
                models.EngineerStock.engineer_id == engineer_id,
                models.EngineerStock.part_id == part_id,
            )
            .values(min_stock=min_stock, updated_at=_utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise NotFoundError(f"No stock entry for part {part_id}.")
        queue_event(
            db,
            DataChanged(
                entity_type="engineer_stock",
                entity_id=engineer_id,
                action="min_stock_updated",
                engineer_id=engineer_id,
                metadata={"part_id": part_id, "min_stock": min_stock},
            ),
        )
        logger.info(
            "Minimum stock updated",
            extra={"engineer_id": engineer_id, "part_id": part_id, "min_stock": min_stock},
        )
        return db.get(models.EngineerStock, (engineer_id, part_id), populate_existing=True)

    return run_in_transaction(db, _set)


def list_adjustments(
    db: Session,
    *,
    engineer_id: str,
    part_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> List[models.StockAdjustment]:
    query = db.query(models.StockAdjustment).filter(models.StockAdjustment.engineer_id == engineer_id)
    if part_id:
        query = query.filter(models.StockAdjustment.part_id == part_id)
    if request_id:
        query = query.filter(models.StockAdjustment.request_id == request_id)
    return query.order_by(
        models.StockAdjustment.timestamp.desc(),
        models.StockAdjustment.id.desc(),
    ).all()
