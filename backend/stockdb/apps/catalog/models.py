from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum as SAEnum, Index, Integer, String

from stockdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuantityClassEnum(str, enum.Enum):
    STANDARD = "STANDARD"
    HIGH_VOLUME = "HIGH_VOLUME"


class Part(Base):
    """
    Master part record. Managed by admin tooling; the engine only reads it.

    `quantity_class` carries the per-request cap policy as data so that callers
    never re-derive it from the part name.
    """

    __tablename__ = "parts"
    __table_args__ = (Index("ix_parts_part_name", "part_name"),)

    id = Column(String(64), primary_key=True)
    part_name = Column(String(255), nullable=False)
    total_stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    quantity_class = Column(
        SAEnum(QuantityClassEnum, name="part_quantity_class", native_enum=False),
        nullable=True,
    )
    last_updated = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Part id={self.id} name={self.part_name!r} class={self.quantity_class}>"
