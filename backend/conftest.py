from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from stockdb.database import Base  # noqa: E402
from stockdb.apps.catalog import models as catalog_models  # noqa: E402
from stockdb.apps.events.broker import broker  # noqa: E402
from stockdb.apps.requests import models as request_models  # noqa: E402
from stockdb.apps.stock import models as stock_models  # noqa: E402
from stockdb.apps.usage import models as usage_models  # noqa: E402
from stockdb.context import EngineerContext  # noqa: E402


@pytest.fixture()
def db_session():
    # StaticPool keeps the single in-memory database visible to TestClient's worker thread.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(
        bind=engine,
        tables=[
            catalog_models.Part.__table__,
            stock_models.EngineerStock.__table__,
            stock_models.StockAdjustment.__table__,
            request_models.MonthlyRequest.__table__,
            usage_models.UsageReport.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def _reset_broker():
    broker.clear()
    yield
    broker.clear()


@pytest.fixture()
def engineer() -> EngineerContext:
    return EngineerContext(engineer_id="eng-1", name="Rina Engineer", location="Jakarta Selatan")


@pytest.fixture()
def other_engineer() -> EngineerContext:
    return EngineerContext(engineer_id="eng-2", name="Budi Engineer", location="Bandung")


@pytest.fixture()
def parts(db_session):
    rows = [
        catalog_models.Part(
            id="P-CLIP",
            part_name="Connector Clip",
            total_stock=100,
            min_stock=5,
            quantity_class=catalog_models.QuantityClassEnum.STANDARD,
        ),
        catalog_models.Part(
            id="P-LOOP",
            part_name="LoopSheet A4",
            total_stock=500,
            min_stock=20,
            quantity_class=catalog_models.QuantityClassEnum.HIGH_VOLUME,
        ),
        catalog_models.Part(
            id="P-CABLE",
            part_name="Patch Cable 2m",
            total_stock=50,
            min_stock=2,
            quantity_class=catalog_models.QuantityClassEnum.STANDARD,
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {row.id: row for row in rows}
