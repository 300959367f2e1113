from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from stockdb.apps.catalog import services as catalog_services
from stockdb.apps.events.broker import DataChanged, queue_event
from stockdb.apps.requests import models as request_models
from stockdb.apps.requests import services as request_services
from stockdb.apps.stock import models as stock_models
from stockdb.apps.stock import services as stock_services
from stockdb.context import EngineerContext
from stockdb.database import run_in_transaction
from stockdb.errors import InvalidStateError

logger = logging.getLogger(__name__)

CONFIRM_RECEIPT_REASON = "delivery receipt confirmed"


@dataclass
class ReceiptConfirmation:
    request: request_models.MonthlyRequest
    confirmed_at: datetime
    adjustments: List[stock_models.StockAdjustment] = field(default_factory=list)


def confirm_receipt(db: Session, ctx: EngineerContext, request_id: str) -> ReceiptConfirmation:
    """
    Confirm delivery of a request and credit the delivered parts to the
    engineer's stock.

    The `delivered -> completed` conditional update and the credit commit
    together or not at all. Whoever flips the status first is the only caller
    that credits; a repeat or concurrent call finds the request `completed` and
    fails with InvalidStateError without touching stock.
    """

    def _confirm(db: Session) -> ReceiptConfirmation:
        request = request_services.get_request(db, ctx, request_id)
        status = request_models.RequestStatusEnum(request.status)
        if status != request_models.RequestStatusEnum.DELIVERED:
            raise InvalidStateError(f"Request is {status.value}; only delivered requests can be confirmed.")

        deltas = request_services.aggregate_items(request.items)
        confirmed_at = request_services.complete_request(db, request)

        adjustments: List[stock_models.StockAdjustment] = []
        if deltas:
            adjustments = stock_services.credit(
                db,
                engineer_id=ctx.engineer_id,
                deltas=deltas,
                reason=CONFIRM_RECEIPT_REASON,
                request_id=request.id,
                engineer_name=ctx.name or None,
                area_group=ctx.location,
                part_names=catalog_services.part_names(db, deltas),
            )

        queue_event(
            db,
            DataChanged(
                entity_type=request_services.ENTITY_TYPE,
                entity_id=request.id,
                action="completed",
                engineer_id=ctx.engineer_id,
                metadata={"status": request_models.RequestStatusEnum.COMPLETED.value},
            ),
        )
        if adjustments:
            queue_event(
                db,
                DataChanged(
                    entity_type="engineer_stock",
                    entity_id=ctx.engineer_id,
                    action="credited",
                    engineer_id=ctx.engineer_id,
                    metadata={"request_id": request.id, "parts": sorted(deltas)},
                ),
            )
        logger.info(
            "Delivery receipt confirmed",
            extra={"request_id": request.id, "engineer_id": ctx.engineer_id, "parts_credited": len(adjustments)},
        )
        return ReceiptConfirmation(request=request, confirmed_at=confirmed_at, adjustments=adjustments)

    return run_in_transaction(db, _confirm)
