# backend/stockdb/context.py
"""
Caller context passed explicitly into every engine call.

The engine keeps no process-wide session state; routers build one of these
from the bearer token and hand it to the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class EngineerContext:
    engineer_id: str
    name: str = ""
    location: Optional[str] = None
    role: str = "engineer"

