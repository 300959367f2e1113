from __future__ import annotations

import os
from datetime import datetime, timezone

from stockdb.context import EngineerContext
from stockdb.database import WriteSessionLocal, unit_of_work
from stockdb.apps.catalog import models as catalog_models
from stockdb.apps.catalog import schemas as catalog_schemas
from stockdb.apps.catalog import services as catalog_services
from stockdb.apps.reconciliation import services as reconciliation_services
from stockdb.apps.requests import models as request_models
from stockdb.apps.requests import services as request_services
from stockdb.apps.stock import services as stock_services

DEMO_PARTS = [
    catalog_schemas.PartCreate(id="PRT-0001", part_name="Connector RJ45", total_stock=500, min_stock=50),
    catalog_schemas.PartCreate(id="PRT-0002", part_name="Patch Cord 3m", total_stock=200, min_stock=20),
    catalog_schemas.PartCreate(id="PRT-0003", part_name="Fuse 2A", total_stock=300, min_stock=30),
    catalog_schemas.PartCreate(id="PRT-0004", part_name="LoopSheet A4", total_stock=1000, min_stock=100),
    catalog_schemas.PartCreate(id="PRT-0005", part_name="Thermal Paper Roll", total_stock=400, min_stock=40),
]

# Optional starter ledger for a demo engineer account.
DEMO_ENGINEER_ID = os.getenv("SEED_ENGINEER_ID")
DEMO_ENGINEER_STOCK = {"PRT-0001": 6, "PRT-0004": 12}


def _seed_parts(db) -> int:
    created = 0
    for payload in DEMO_PARTS:
        if db.get(catalog_models.Part, payload.id) is not None:
            continue
        catalog_services.create_part(db, data=payload)
        created += 1
    return created


def _seed_engineer_stock(db, engineer_id: str) -> int:
    """
    Give the demo engineer a starter ledger the way stock normally arrives: a
    request that the warehouse delivers and the engineer confirms.
    """
    held = stock_services.snapshot(db, engineer_id=engineer_id, part_ids=DEMO_ENGINEER_STOCK)
    missing = {part_id: qty for part_id, qty in DEMO_ENGINEER_STOCK.items() if held[part_id] == 0}
    if not missing:
        return 0
    ctx = EngineerContext(engineer_id=engineer_id, name="Demo Engineer")
    request = request_services.create_request(
        db,
        ctx,
        items=[{"partId": part_id, "quantity": qty} for part_id, qty in missing.items()],
    )
    # Reviewer side, normally done by the warehouse tooling.
    now = datetime.now(timezone.utc)
    request.status = request_models.RequestStatusEnum.DELIVERED
    request.reviewed_by = "seed"
    request.reviewed_at = now
    request.delivered_by = "seed"
    request.delivered_at = now
    db.commit()
    confirmation = reconciliation_services.confirm_receipt(db, ctx, request.id)
    return len(confirmation.adjustments)


def main() -> None:
    db = WriteSessionLocal()
    try:
        with unit_of_work(db):
            created = _seed_parts(db)
        print(f"Seeded {created} catalog parts")
        if DEMO_ENGINEER_ID:
            credited = _seed_engineer_stock(db, DEMO_ENGINEER_ID)
            print(f"Credited {credited} parts to {DEMO_ENGINEER_ID}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
