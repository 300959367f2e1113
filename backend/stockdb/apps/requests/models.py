from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum as SAEnum, Index, String, Text

from stockdb.database import Base
from stockdb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatusEnum(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MonthlyRequest(Base):
    """
    An engineer's monthly request for parts.

    `items` is the ordered list of {"partId", "quantity"} pairs, replaced
    wholesale on edit. Status and timestamp columns are only written through
    conditional updates in `requests.services`.
    """

    __tablename__ = "monthly_requests"
    __table_args__ = (
        Index("ix_monthly_requests_engineer_status", "engineer_id", "status"),
        Index("ix_monthly_requests_engineer_period", "engineer_id", "period"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    engineer_id = Column(String(64), nullable=False, index=True)
    period = Column(String(7), nullable=False)
    items = Column(JSON, nullable=False, default=list)
    status = Column(
        SAEnum(
            RequestStatusEnum,
            name="request_status",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=RequestStatusEnum.PENDING,
        index=True,
    )

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    delivered_by = Column(String(64), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    last_edited_by = Column(String(64), nullable=True)
    last_edited_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<MonthlyRequest id={self.id} engineer={self.engineer_id} status={self.status}>"
