from __future__ import annotations

import threading

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockdb.apps.catalog import models as catalog_models
from stockdb.apps.stock import models as stock_models
from stockdb.apps.stock import services as stock_services
from stockdb.apps.usage import models, services
from stockdb.context import EngineerContext
from stockdb.database import Base
from stockdb.errors import EngineError


def test_two_devices_racing_for_the_last_unit(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with SessionLocal() as db:
        db.add(catalog_models.Part(id="P-CLIP", part_name="Connector Clip", min_stock=5))
        db.add(stock_models.EngineerStock(engineer_id="eng-1", part_id="P-CLIP", quantity=1))
        db.commit()

    # Both submissions read the ledger before either writes.
    barrier = threading.Barrier(2)
    seen = threading.local()
    real_snapshot = stock_services.snapshot

    def snapshot_then_wait(db, *, engineer_id, part_ids):
        quantities = real_snapshot(db, engineer_id=engineer_id, part_ids=part_ids)
        if not getattr(seen, "waited", False):
            seen.waited = True
            barrier.wait(timeout=10)
        return quantities

    monkeypatch.setattr(stock_services, "snapshot", snapshot_then_wait)

    ctx = EngineerContext(engineer_id="eng-1", name="Rina Engineer")
    outcomes = []
    lock = threading.Lock()

    def submit(so_number):
        db = SessionLocal()
        try:
            services.submit_usage_report(db, ctx, so_number=so_number, items=[{"partId": "P-CLIP", "quantity": 1}])
            result = "ok"
        except EngineError as exc:
            result = type(exc).__name__
        except threading.BrokenBarrierError:
            result = "barrier"
        finally:
            db.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=submit, args=(so,)) for so in ("20260217", "20260218")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    monkeypatch.undo()

    assert sorted(outcomes) == ["InsufficientStockError", "ok"]
    with SessionLocal() as db:
        assert stock_services.snapshot(db, engineer_id="eng-1", part_ids=["P-CLIP"]) == {"P-CLIP": 0}
        assert db.query(models.UsageReport).count() == 1
    engine.dispose()
