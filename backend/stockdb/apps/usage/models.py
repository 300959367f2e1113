from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, UniqueConstraint

from stockdb.database import Base
from stockdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageReport(Base):
    """
    Immutable record of parts consumed on a service order. The report itself
    documents the ledger debit; no adjustment row is written for it.
    """

    __tablename__ = "usage_reports"
    __table_args__ = (
        UniqueConstraint("engineer_id", "idempotency_key", name="uq_usage_reports_engineer_idempotency"),
        Index("ix_usage_reports_engineer_date", "engineer_id", "date"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    engineer_id = Column(String(64), nullable=False, index=True)
    so_number = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    idempotency_key = Column(String(128), nullable=True)
    payload_hash = Column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<UsageReport id={self.id} engineer={self.engineer_id} so={self.so_number}>"
