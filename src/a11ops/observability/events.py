"""Typed lifecycle events for the delivery pipeline.

All events are frozen (immutable) dataclasses. The pipeline emits these;
it doesn't know about logs or files. Subscribers handle routing.

Hosts that want to react to delivery problems subscribe on the linker:

    from a11ops.observability import A11opsEventLinker, DeliveryFailed

    @A11opsEventLinker.on(DeliveryFailed)
    def _on_failed(failure: DeliveryFailed) -> None:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventEnqueued:
    event_id: str
    severity: str
    category: str
    queue_depth: int


@dataclass(frozen=True)
class EventDropped:
    event_id: str
    severity: str
    reason: str  # "evicted" | "queue_full" | "rejected" | "retries_exhausted" | "shutdown"
    attempts: int


# ---------------------------------------------------------------------------
# Transmission
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchTransmitted:
    batch_size: int
    status_code: int | None
    outcome: str  # "delivered" | "retry" | "terminal"
    latency_ms: float


@dataclass(frozen=True)
class EventDelivered:
    event_id: str
    severity: str
    attempts: int


@dataclass(frozen=True)
class DeliveryRetrying:
    event_id: str
    attempt: int
    delay_seconds: float
    status_code: int | None
    error: str | None


@dataclass(frozen=True)
class DeliveryFailed:
    """Terminal failure: the collector rejected the batch (4xx, bad credentials)."""

    event_ids: tuple[str, ...]
    status_code: int | None
    error: str | None
    terminal: bool
