# backend/stockdb/errors.py
"""
Typed failures raised by the engine.

Every mutating operation either returns the resulting entity or raises one of
these. Routers translate them to HTTP responses in `stockdb.main`; nothing in
the ledger paths catches and discards them.
"""

from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base class for every engine failure."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class ValidationError(EngineError):
    """Malformed input: empty item list, quantity over cap, bad SO number."""

    code = "validation_error"


class InvalidStateError(EngineError):
    """Operation attempted from a state that forbids it."""

    code = "invalid_state"


class NotFoundError(InvalidStateError):
    """The entity does not exist or is not owned by the caller."""

    code = "not_found"


class InsufficientStockError(EngineError):
    """A debit would drive a ledger entry below zero."""

    code = "insufficient_stock"

    def __init__(
        self,
        part_id: str,
        requested: int,
        available: int,
        *,
        part_name: Optional[str] = None,
    ) -> None:
        self.part_id = part_id
        self.part_name = part_name or part_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {self.part_name}: requested {requested}, available {available}."
        )

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update(
            {
                "part_id": self.part_id,
                "requested": self.requested,
                "available": self.available,
            }
        )
        return payload


class ConcurrencyConflictError(EngineError):
    """A conditional write lost its race; safe to retry from a fresh read."""

    code = "concurrency_conflict"
    retryable = True


class StorageError(EngineError):
    """The persistence layer failed (network, availability, driver error)."""

    code = "storage_error"
