from __future__ import annotations

import json
import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional

from stockdb.utils.identifiers import generate_uuid7

logger = logging.getLogger(__name__)

_PENDING_KEY = "stockdb.pending_events"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DataChanged:
    entity_type: str
    entity_id: str
    action: str
    engineer_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_uuid7)
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def type(self) -> str:
        return f"{self.entity_type}.{self.action}".lower()

    def to_json(self) -> str:
        payload = {
            "id": self.id,
            "type": self.type,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "engineerId": self.engineer_id,
            "timestamp": self.occurred_at.isoformat(),
            "metadata": self.metadata,
        }
        return json.dumps(payload, default=str)


class EventBroker:
    """Fan-out of committed changes to in-process subscribers (dashboards, SSE bridges)."""

    def __init__(self, replay_size: int = 500) -> None:
        self._subscribers: set[queue.Queue[DataChanged]] = set()
        self._history: Deque[DataChanged] = deque(maxlen=replay_size)
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int = 200) -> queue.Queue[DataChanged]:
        q: queue.Queue[DataChanged] = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q: queue.Queue[DataChanged]) -> None:
        with self._lock:
            self._subscribers.discard(q)

    def recent(self, *, engineer_id: Optional[str] = None) -> List[DataChanged]:
        with self._lock:
            history = list(self._history)
        if engineer_id is None:
            return history
        return [event for event in history if event.engineer_id == engineer_id]

    def publish(self, event: DataChanged) -> None:
        with self._lock:
            self._history.append(event)
            subscribers: Iterable[queue.Queue[DataChanged]] = list(self._subscribers)
        for q in subscribers:
            try:
                q.put_nowait(event)
            except queue.Full:
                # Slow consumer: drop its oldest event to make room.
                try:
                    _ = q.get_nowait()
                    q.put_nowait(event)
                except (queue.Empty, queue.Full):
                    logger.warning("Dropped data-changed event for slow subscriber", extra={"event_id": event.id})

    def clear(self) -> None:
        with self._lock:
            self._history.clear()


broker = EventBroker()


def queue_event(db, event: DataChanged) -> None:
    """Hold an event on the session until its transaction commits."""
    db.info.setdefault(_PENDING_KEY, []).append(event)


def flush_pending_events(db) -> int:
    events: List[DataChanged] = db.info.pop(_PENDING_KEY, [])
    for event in events:
        broker.publish(event)
    return len(events)


def discard_pending_events(db) -> int:
    events: List[DataChanged] = db.info.pop(_PENDING_KEY, [])
    return len(events)
