from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from stockdb.apps.catalog import models as catalog_models
from stockdb.apps.events.broker import DataChanged, broker, queue_event
from stockdb.apps.stock import models as stock_models
from stockdb.database import run_in_transaction, unit_of_work
from stockdb.errors import ConcurrencyConflictError, InvalidStateError, StorageError, ValidationError


def _event() -> DataChanged:
    return DataChanged(entity_type="part", entity_id="P-X", action="created")


def test_unit_of_work_commits_and_publishes(db_session):
    with unit_of_work(db_session):
        db_session.add(catalog_models.Part(id="P-X", part_name="Widget"))
        queue_event(db_session, _event())

    assert db_session.get(catalog_models.Part, "P-X") is not None
    assert [event.entity_id for event in broker.recent()] == ["P-X"]


def test_engine_errors_roll_back_unchanged(db_session):
    with pytest.raises(InvalidStateError):
        with unit_of_work(db_session):
            db_session.add(catalog_models.Part(id="P-X", part_name="Widget"))
            db_session.flush()
            queue_event(db_session, _event())
            raise InvalidStateError("nope")

    assert db_session.query(catalog_models.Part).count() == 0
    assert broker.recent() == []


def test_integrity_errors_surface_as_conflicts(db_session, parts):
    # Behave like a second writer that never saw the first row.
    db_session.expunge_all()

    with pytest.raises(ConcurrencyConflictError) as excinfo:
        with unit_of_work(db_session):
            db_session.add(catalog_models.Part(id="P-CLIP", part_name="Duplicate"))
            db_session.flush()

    assert isinstance(excinfo.value.__cause__, IntegrityError)
    assert excinfo.value.retryable


def test_other_storage_failures_surface_as_storage_errors(db_session):
    def _fail():
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    with pytest.raises(StorageError):
        with unit_of_work(db_session):
            _fail()


def test_run_in_transaction_retries_only_conflicts(db_session):
    calls = {"count": 0}

    def flaky(db):
        calls["count"] += 1
        if calls["count"] < 3:
            raise ConcurrencyConflictError("lost race")
        return "ok"

    assert run_in_transaction(db_session, flaky, attempts=3) == "ok"
    assert calls["count"] == 3

    calls["count"] = 0

    def always_conflicting(db):
        calls["count"] += 1
        raise ConcurrencyConflictError("lost race")

    with pytest.raises(ConcurrencyConflictError):
        run_in_transaction(db_session, always_conflicting, attempts=2)
    assert calls["count"] == 2

    calls["count"] = 0

    def invalid(db):
        calls["count"] += 1
        raise InvalidStateError("terminal")

    with pytest.raises(InvalidStateError):
        run_in_transaction(db_session, invalid, attempts=3)
    assert calls["count"] == 1


@pytest.mark.parametrize(
    "row",
    [
        lambda: stock_models.EngineerStock(engineer_id="eng-1", part_id="P-CLIP", quantity=-1),
        lambda: catalog_models.Part(id="P-NULL", part_name=None),
    ],
    ids=["check", "not-null"],
)
def test_non_unique_constraint_failures_are_not_retried(db_session, parts, row):
    calls = {"count": 0}

    def insert(db):
        calls["count"] += 1
        db.add(row())
        db.flush()

    with pytest.raises(ValidationError) as excinfo:
        run_in_transaction(db_session, insert, attempts=3)

    assert calls["count"] == 1
    assert isinstance(excinfo.value.__cause__, IntegrityError)
    assert not excinfo.value.retryable
