from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from stockdb.database import Base
from stockdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineerStock(Base):
    """
    Authoritative count of a part held by an engineer.

    Rows are created on first credit and never deleted. Mutated only through
    `stock.services.credit` / `stock.services.debit`.
    """

    __tablename__ = "engineer_stock"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_engineer_stock_quantity_non_negative"),
        Index("ix_engineer_stock_engineer", "engineer_id"),
    )

    engineer_id = Column(String(64), primary_key=True)
    part_id = Column(String(64), ForeignKey("parts.id", ondelete="RESTRICT"), primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=True)
    last_sync = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<EngineerStock engineer={self.engineer_id} part={self.part_id} qty={self.quantity}>"


class StockAdjustment(Base):
    """
    Append-only audit row for a ledger credit. One row per (engineer, part)
    touched by a reconciliation event; `request_id` + `part_id` is unique so a
    request can never credit the same part twice.
    """

    __tablename__ = "stock_adjustments"
    __table_args__ = (
        UniqueConstraint("request_id", "part_id", name="uq_stock_adjustments_request_part"),
        Index("ix_stock_adjustments_engineer_time", "engineer_id", "timestamp"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    engineer_id = Column(String(64), nullable=False, index=True)
    engineer_name = Column(String(255), nullable=True)
    part_id = Column(String(64), nullable=False, index=True)
    part_name = Column(String(255), nullable=True)
    request_id = Column(String(36), nullable=True, index=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    delta = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    area_group = Column(String(128), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<StockAdjustment engineer={self.engineer_id} part={self.part_id} "
            f"{self.previous_quantity}->{self.new_quantity}>"
        )
