from __future__ import annotations

import pytest

from stockdb.apps.events.broker import broker
from stockdb.apps.stock import models, services
from stockdb.database import unit_of_work
from stockdb.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError


def _seed(db, engineer_id: str, part_id: str, quantity: int, min_stock=None) -> None:
    db.add(models.EngineerStock(engineer_id=engineer_id, part_id=part_id, quantity=quantity, min_stock=min_stock))
    db.commit()


def test_snapshot_reports_missing_rows_as_zero(db_session, parts):
    _seed(db_session, "eng-1", "P-CLIP", 4)

    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-CLIP", "P-LOOP"]) == {
        "P-CLIP": 4,
        "P-LOOP": 0,
    }
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=[]) == {}


def test_credit_creates_row_and_logs_adjustment(db_session, parts):
    with unit_of_work(db_session):
        adjustments = services.credit(
            db_session,
            engineer_id="eng-1",
            deltas={"P-LOOP": 12},
            reason="manual correction",
            engineer_name="Rina",
            part_names={"P-LOOP": "LoopSheet A4"},
        )

    assert len(adjustments) == 1
    adjustment = adjustments[0]
    assert (adjustment.previous_quantity, adjustment.new_quantity, adjustment.delta) == (0, 12, 12)
    assert adjustment.part_name == "LoopSheet A4"
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-LOOP"]) == {"P-LOOP": 12}


def test_credit_adds_to_existing_quantity_per_part(db_session, parts):
    _seed(db_session, "eng-1", "P-CLIP", 2)
    _seed(db_session, "eng-1", "P-CABLE", 7)

    with unit_of_work(db_session):
        adjustments = services.credit(
            db_session,
            engineer_id="eng-1",
            deltas={"P-CLIP": 3, "P-CABLE": 1},
            reason="delivery receipt confirmed",
        )

    by_part = {adj.part_id: adj for adj in adjustments}
    assert (by_part["P-CLIP"].previous_quantity, by_part["P-CLIP"].new_quantity) == (2, 5)
    assert (by_part["P-CABLE"].previous_quantity, by_part["P-CABLE"].new_quantity) == (7, 8)
    assert db_session.query(models.StockAdjustment).count() == 2


def test_credit_does_not_touch_other_engineers(db_session, parts):
    _seed(db_session, "eng-2", "P-CLIP", 9)

    with unit_of_work(db_session):
        services.credit(db_session, engineer_id="eng-1", deltas={"P-CLIP": 1}, reason="test")

    assert services.snapshot(db_session, engineer_id="eng-2", part_ids=["P-CLIP"]) == {"P-CLIP": 9}
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-CLIP"]) == {"P-CLIP": 1}


@pytest.mark.parametrize("deltas", [{}, {"P-CLIP": 0}, {"P-CLIP": -2}, {"P-CLIP": True}])
def test_credit_rejects_non_positive_deltas(db_session, parts, deltas):
    with pytest.raises(ValidationError):
        services.credit(db_session, engineer_id="eng-1", deltas=deltas, reason="test")


def test_credit_retries_lost_compare_and_set(db_session, parts, monkeypatch):
    _seed(db_session, "eng-1", "P-CLIP", 2)
    real_read = services._current_quantity
    calls = {"count": 0}

    def stale_then_fresh(db, *, engineer_id, part_id):
        calls["count"] += 1
        if calls["count"] == 1:
            return 1  # another writer moved the row since this value was read
        return real_read(db, engineer_id=engineer_id, part_id=part_id)

    monkeypatch.setattr(services, "_current_quantity", stale_then_fresh)
    with unit_of_work(db_session):
        adjustments = services.credit(db_session, engineer_id="eng-1", deltas={"P-CLIP": 3}, reason="test")

    assert calls["count"] == 2
    assert (adjustments[0].previous_quantity, adjustments[0].new_quantity) == (2, 5)
    monkeypatch.undo()
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-CLIP"]) == {"P-CLIP": 5}


def test_credit_gives_up_after_bounded_attempts(db_session, parts, monkeypatch):
    _seed(db_session, "eng-1", "P-CLIP", 2)
    monkeypatch.setattr(services, "_current_quantity", lambda db, *, engineer_id, part_id: 99)

    with pytest.raises(ConcurrencyConflictError):
        with unit_of_work(db_session):
            services.credit(db_session, engineer_id="eng-1", deltas={"P-CLIP": 1}, reason="test")

    monkeypatch.undo()
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-CLIP"]) == {"P-CLIP": 2}
    assert db_session.query(models.StockAdjustment).count() == 0


def test_debit_subtracts_and_returns_remaining(db_session, parts):
    _seed(db_session, "eng-1", "P-CLIP", 5)
    _seed(db_session, "eng-1", "P-LOOP", 20)

    with unit_of_work(db_session):
        remaining = services.debit(db_session, engineer_id="eng-1", deltas={"P-CLIP": 5, "P-LOOP": 4})

    assert remaining == {"P-CLIP": 0, "P-LOOP": 16}
    # Debits leave no adjustment rows; the usage report documents them.
    assert db_session.query(models.StockAdjustment).count() == 0


def test_debit_is_all_or_nothing(db_session, parts):
    _seed(db_session, "eng-1", "P-CABLE", 5)
    _seed(db_session, "eng-1", "P-CLIP", 1)

    with pytest.raises(InsufficientStockError) as excinfo:
        with unit_of_work(db_session):
            # P-CABLE sorts first and is debited before P-CLIP fails.
            services.debit(db_session, engineer_id="eng-1", deltas={"P-CABLE": 2, "P-CLIP": 3})

    assert excinfo.value.part_id == "P-CLIP"
    assert excinfo.value.available == 1
    assert excinfo.value.requested == 3
    assert services.snapshot(db_session, engineer_id="eng-1", part_ids=["P-CABLE", "P-CLIP"]) == {
        "P-CABLE": 5,
        "P-CLIP": 1,
    }


def test_debit_of_part_never_held_reports_zero_available(db_session, parts):
    with pytest.raises(InsufficientStockError) as excinfo:
        with unit_of_work(db_session):
            services.debit(db_session, engineer_id="eng-1", deltas={"P-LOOP": 1})

    assert excinfo.value.available == 0


def test_list_engineer_stock_flags_low_and_empty(db_session, parts):
    _seed(db_session, "eng-1", "P-CLIP", 0)
    _seed(db_session, "eng-1", "P-CABLE", 3)
    _seed(db_session, "eng-1", "P-LOOP", 30, min_stock=25)

    rows = {row.part_id: row for row in services.list_engineer_stock(db_session, engineer_id="eng-1")}

    assert rows["P-CLIP"].is_empty and not rows["P-CLIP"].is_low
    # Catalog minimum for the cable is 2.
    assert not rows["P-CABLE"].is_low
    assert rows["P-CABLE"].low_stock_threshold == 2
    assert rows["P-CABLE"].part_name == "Patch Cable 2m"
    assert not rows["P-LOOP"].is_low
    assert rows["P-LOOP"].low_stock_threshold == 25


def test_low_stock_falls_back_to_catalog_minimum(db_session, parts):
    _seed(db_session, "eng-1", "P-LOOP", 10)

    row = services.list_engineer_stock(db_session, engineer_id="eng-1")[0]

    assert row.min_stock is None
    assert row.low_stock_threshold == 20
    assert row.is_low


def test_low_stock_threshold_order():
    assert services.low_stock_threshold(3, 20) == 3
    assert services.low_stock_threshold(0, 20) == 0
    assert services.low_stock_threshold(None, 20) == 20
    assert services.low_stock_threshold(None, 0) == services.LOW_STOCK_THRESHOLD
    assert services.low_stock_threshold(None, None) == services.LOW_STOCK_THRESHOLD


def test_set_min_stock_leaves_quantity_and_log_alone(db_session, parts):
    _seed(db_session, "eng-1", "P-LOOP", 10)

    row = services.set_min_stock(db_session, engineer_id="eng-1", part_id="P-LOOP", min_stock=8)

    assert (row.quantity, row.min_stock) == (10, 8)
    assert db_session.query(models.StockAdjustment).count() == 0
    listed = services.list_engineer_stock(db_session, engineer_id="eng-1")[0]
    assert listed.low_stock_threshold == 8
    assert not listed.is_low
    assert [event.type for event in broker.recent(engineer_id="eng-1")] == ["engineer_stock.min_stock_updated"]


@pytest.mark.parametrize("value", [-1, True, 2.5])
def test_set_min_stock_rejects_bad_values(db_session, parts, value):
    _seed(db_session, "eng-1", "P-LOOP", 10)

    with pytest.raises(ValidationError):
        services.set_min_stock(db_session, engineer_id="eng-1", part_id="P-LOOP", min_stock=value)


def test_set_min_stock_needs_a_held_part(db_session, parts):
    _seed(db_session, "eng-2", "P-LOOP", 10)

    with pytest.raises(NotFoundError):
        services.set_min_stock(db_session, engineer_id="eng-1", part_id="P-LOOP", min_stock=3)

    assert services.list_engineer_stock(db_session, engineer_id="eng-2")[0].min_stock is None


def test_list_adjustments_filters_by_part(db_session, parts):
    with unit_of_work(db_session):
        services.credit(db_session, engineer_id="eng-1", deltas={"P-CLIP": 1, "P-LOOP": 2}, reason="test")

    rows = services.list_adjustments(db_session, engineer_id="eng-1", part_id="P-LOOP")
    assert [row.part_id for row in rows] == ["P-LOOP"]
    assert len(services.list_adjustments(db_session, engineer_id="eng-1")) == 2
