"""
Request state machine.

Reviewer-driven edges (approve, reject, deliver) are listed so that state
written by admin tooling can be checked, but no engine operation drives them.
"""

from __future__ import annotations

from typing import Dict, FrozenSet

from stockdb.errors import InvalidStateError
from .models import RequestStatusEnum

S = RequestStatusEnum

TRANSITIONS: Dict[RequestStatusEnum, FrozenSet[RequestStatusEnum]] = {
    S.PENDING: frozenset({S.APPROVED, S.REJECTED, S.CANCELLED}),
    S.APPROVED: frozenset({S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset({S.COMPLETED}),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
}

REVIEWER_TRANSITIONS = frozenset(
    {
        (S.PENDING, S.APPROVED),
        (S.PENDING, S.REJECTED),
        (S.APPROVED, S.DELIVERED),
    }
)

EDITABLE_STATES = frozenset({S.PENDING})


def can_transition(from_state: RequestStatusEnum, to_state: RequestStatusEnum) -> bool:
    return RequestStatusEnum(to_state) in TRANSITIONS.get(RequestStatusEnum(from_state), frozenset())


def is_engine_transition(from_state: RequestStatusEnum, to_state: RequestStatusEnum) -> bool:
    return can_transition(from_state, to_state) and (
        RequestStatusEnum(from_state),
        RequestStatusEnum(to_state),
    ) not in REVIEWER_TRANSITIONS


def assert_transition(from_state: RequestStatusEnum, to_state: RequestStatusEnum) -> None:
    """Guard for engine operations; reviewer-owned edges are refused here too."""
    if not is_engine_transition(from_state, to_state):
        raise InvalidStateError(
            f"Cannot move request from {RequestStatusEnum(from_state).value} to {RequestStatusEnum(to_state).value}."
        )
