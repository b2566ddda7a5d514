"""Routes all lifecycle events to structured log lines via the configured LogFormatter.

Always-on subscriber. Called by emitter.configure() on every startup.
Uses get_logger() from the logging module -- works with structlog, stdlib,
or any registered LogFormatter.
"""

from __future__ import annotations

from dataclasses import asdict

from a11ops.observability.events import (
    BatchTransmitted,
    DeliveryFailed,
    DeliveryRetrying,
    EventDelivered,
    EventDropped,
    EventEnqueued,
)
from a11ops.observability.linker import A11opsEventLinker
from a11ops.observability.logging import get_logger


def _get_logger():
    """Lazy logger -- always reflects the active formatter, not stale import-time state."""
    return get_logger("a11ops.events")


def _to_dict(event: object) -> dict:
    """Convert frozen dataclass to dict for structlog."""
    return asdict(event)  # type: ignore[arg-type]


def register_structlog_subscriber() -> None:
    """Register structlog handlers for all lifecycle events on A11opsEventLinker."""

    @A11opsEventLinker.on(EventEnqueued)
    def _log_enqueued(event: EventEnqueued) -> None:
        _get_logger().debug("event.enqueued", **_to_dict(event))

    @A11opsEventLinker.on(EventDropped)
    def _log_dropped(event: EventDropped) -> None:
        if event.reason in ("rejected", "retries_exhausted"):
            _get_logger().warning("event.dropped", **_to_dict(event))
        else:
            _get_logger().info("event.dropped", **_to_dict(event))

    @A11opsEventLinker.on(BatchTransmitted)
    def _log_batch(event: BatchTransmitted) -> None:
        _get_logger().debug("batch.transmitted", **_to_dict(event))

    @A11opsEventLinker.on(EventDelivered)
    def _log_delivered(event: EventDelivered) -> None:
        _get_logger().debug("event.delivered", **_to_dict(event))

    @A11opsEventLinker.on(DeliveryRetrying)
    def _log_retrying(event: DeliveryRetrying) -> None:
        _get_logger().warning("delivery.retrying", **_to_dict(event))

    @A11opsEventLinker.on(DeliveryFailed)
    def _log_failed(event: DeliveryFailed) -> None:
        _get_logger().error("delivery.failed", **_to_dict(event))
