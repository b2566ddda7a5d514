"""Bounded in-memory delivery queue with severity-aware eviction.

Items stay in enqueue order. Under pressure the oldest of the
lowest-severity waiting items (PENDING or RETRYING) is evicted; an incoming
event below every waiting item is refused instead. SENDING items are in
flight and are never evicted.

All methods are synchronous: on a single event loop they are atomic with
respect to each other and to the transmit path.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from a11ops.models import DeliveryState, Event

_EVICTABLE = (DeliveryState.PENDING, DeliveryState.RETRYING)


@dataclass(eq=False)
class QueueItem:
    """An Event plus its delivery bookkeeping."""

    event: Event
    seq: int
    enqueued_at: float
    attempt: int = 0
    next_retry_at: float | None = None
    state: DeliveryState = DeliveryState.PENDING
    drop_reason: str | None = None
    completed: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def is_due(self, now: float) -> bool:
        if self.state is DeliveryState.PENDING:
            return True
        if self.state is DeliveryState.RETRYING:
            return self.next_retry_at is None or self.next_retry_at <= now
        return False


class DeliveryQueue:
    def __init__(self, capacity: int, clock: Callable[[], float] = time.monotonic) -> None:
        if capacity < 1:
            raise ValueError("queue capacity must be at least 1")
        self._capacity = capacity
        self._clock = clock
        self._items: list[QueueItem] = []
        self._seq = itertools.count()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> list[QueueItem]:
        return list(self._items)

    def push(self, event: Event) -> tuple[QueueItem | None, list[QueueItem]]:
        """Insert an event. Returns (new item or None if refused, evicted items)."""
        evicted: list[QueueItem] = []
        if len(self._items) >= self._capacity:
            victim = self._eviction_candidate()
            if victim is None or event.severity < victim.event.severity:
                return None, evicted
            self._finish(victim, DeliveryState.DROPPED, "evicted")
            evicted.append(victim)

        item = QueueItem(event=event, seq=next(self._seq), enqueued_at=self._clock())
        self._items.append(item)
        return item, evicted

    def _eviction_candidate(self) -> QueueItem | None:
        """Oldest item among the lowest-severity waiting ones."""
        victim: QueueItem | None = None
        for item in self._items:
            if item.state not in _EVICTABLE:
                continue
            if victim is None or item.event.severity < victim.event.severity:
                victim = item
        return victim

    def take_due(self, limit: int) -> list[QueueItem]:
        """Next batch in enqueue order; taken items move to SENDING."""
        now = self._clock()
        batch: list[QueueItem] = []
        for item in self._items:
            if len(batch) >= limit:
                break
            if item.is_due(now):
                item.state = DeliveryState.SENDING
                item.attempt += 1
                batch.append(item)
        return batch

    def mark_delivered(self, item: QueueItem) -> None:
        self._finish(item, DeliveryState.DELIVERED, None)

    def mark_retrying(self, item: QueueItem, delay: float) -> None:
        item.state = DeliveryState.RETRYING
        item.next_retry_at = self._clock() + delay

    def mark_dropped(self, item: QueueItem, reason: str) -> None:
        self._finish(item, DeliveryState.DROPPED, reason)

    def _finish(self, item: QueueItem, state: DeliveryState, reason: str | None) -> None:
        item.state = state
        item.drop_reason = reason
        item.next_retry_at = None
        if item in self._items:
            self._items.remove(item)
        item.completed.set()

    def has_due(self) -> bool:
        now = self._clock()
        return any(item.is_due(now) for item in self._items)

    def seconds_until_due(self) -> float | None:
        """0 if something is due now, the wait until the next retry, or None if only in-flight items remain."""
        now = self._clock()
        waits = [
            0.0 if item.state is DeliveryState.PENDING else max(0.0, (item.next_retry_at or now) - now)
            for item in self._items
            if item.state in _EVICTABLE
        ]
        return min(waits) if waits else None

    def waiting(self) -> list[QueueItem]:
        return [item for item in self._items if item.state in _EVICTABLE]
