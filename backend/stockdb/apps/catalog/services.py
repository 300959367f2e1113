from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from stockdb.errors import ValidationError
from . import models, schemas

DEFAULT_MAX_QUANTITY = 10
HIGH_VOLUME_MAX_QUANTITY = 20

# Normalised tokens (lowercase, alphanumerics only) that mark the loop-sheet
# consumable family, including the common "loopshet" misspelling.
HIGH_VOLUME_TOKENS = ("loopsheet", "loopshet")

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def _normalise_token(value: Optional[str]) -> str:
    return _NON_ALNUM.sub("", (value or "").lower())


def classify_part(part_name: Optional[str], part_id: Optional[str] = None) -> models.QuantityClassEnum:
    tokens = (_normalise_token(part_name), _normalise_token(part_id))
    for token in tokens:
        if any(marker in token for marker in HIGH_VOLUME_TOKENS):
            return models.QuantityClassEnum.HIGH_VOLUME
    return models.QuantityClassEnum.STANDARD


def quantity_class_for(part: models.Part) -> models.QuantityClassEnum:
    if part.quantity_class is not None:
        return models.QuantityClassEnum(part.quantity_class)
    return classify_part(part.part_name, part.id)


def max_quantity_for(part: models.Part) -> int:
    if quantity_class_for(part) == models.QuantityClassEnum.HIGH_VOLUME:
        return HIGH_VOLUME_MAX_QUANTITY
    return DEFAULT_MAX_QUANTITY


def get_part(db: Session, part_id: str) -> Optional[models.Part]:
    return db.query(models.Part).filter(models.Part.id == part_id).first()


def get_parts(db: Session, part_ids: Iterable[str]) -> Dict[str, models.Part]:
    ids = list(dict.fromkeys(part_ids))
    if not ids:
        return {}
    rows = db.query(models.Part).filter(models.Part.id.in_(ids)).all()
    return {row.id: row for row in rows}


def max_quantity_for_part_id(db: Session, part_id: str) -> int:
    """Authoritative cap lookup; reads the catalog every time."""
    part = get_part(db, part_id)
    if part is None:
        raise ValidationError(f"Unknown part {part_id}.")
    return max_quantity_for(part)


def part_names(db: Session, part_ids: Iterable[str]) -> Dict[str, str]:
    return {part_id: part.part_name for part_id, part in get_parts(db, part_ids).items()}


def list_parts(db: Session, *, search: Optional[str] = None) -> List[models.Part]:
    query = db.query(models.Part)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            models.Part.part_name.ilike(pattern) | models.Part.id.ilike(pattern)
        )
    return query.order_by(models.Part.part_name.asc()).all()


def create_part(db: Session, *, data: schemas.PartCreate) -> models.Part:
    """
    Register a catalog entry (admin tooling / seeding). The quantity class is
    resolved here once and stored.
    """
    part_id = data.id.strip()
    if not part_id or not data.part_name.strip():
        raise ValidationError("Part id and name are required.")
    if get_part(db, part_id) is not None:
        raise ValidationError(f"Part {part_id} already exists.")
    part = models.Part(
        id=part_id,
        part_name=data.part_name.strip(),
        total_stock=data.total_stock,
        min_stock=data.min_stock,
        quantity_class=data.quantity_class or classify_part(data.part_name, part_id),
        last_updated=datetime.now(timezone.utc),
    )
    db.add(part)
    db.flush()
    return part
