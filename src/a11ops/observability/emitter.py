"""Process-wide lifecycle event bus.

Pipeline code calls emit(SomeEvent(...)) and nothing else. Until
configure() has run, emit() drops events on the floor, so the pipeline can
be exercised without any subscribers.

Subscribers run through pyventus' asyncio processor: synchronously (via a
short-lived loop) when called from plain code, as tasks when called from a
running loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pyventus.events import EventEmitter

if TYPE_CHECKING:
    from a11ops.observability.config import ObservabilityConfig

_bus: EventEmitter | None = None


def emit(event: Any) -> None:
    if _bus is not None:
        _bus.emit(event)


def configure(config: ObservabilityConfig | None = None) -> EventEmitter:
    """Set up SDK logging and the event bus on first call; later calls return the same bus.

    The client calls this on construction, so the first client's
    ObservabilityConfig wins for the whole process.
    """
    global _bus

    if _bus is not None:
        return _bus

    from pyventus.core.processing.asyncio import AsyncIOProcessingService

    from a11ops.observability.config import ObservabilityConfig
    from a11ops.observability.linker import A11opsEventLinker
    from a11ops.observability.subscribers.structlog_sub import register_structlog_subscriber

    cfg = config or ObservabilityConfig()
    if cfg.setup_logging:
        from a11ops.observability.logging import setup_logging

        setup_logging(cfg)

    bus = EventEmitter(
        event_linker=A11opsEventLinker,
        event_processor=AsyncIOProcessingService(),
    )
    register_structlog_subscriber()
    if cfg.events_path:
        from a11ops.observability.subscribers.jsonl import register_jsonl_subscriber

        register_jsonl_subscriber(cfg.events_path)

    _bus = bus
    return bus


def is_configured() -> bool:
    return _bus is not None


def reset() -> None:
    """Drop the bus, every subscriber and the SDK log handler. Tests only."""
    global _bus

    from a11ops.observability.linker import A11opsEventLinker
    from a11ops.observability.logging import shutdown_logging

    shutdown_logging()
    A11opsEventLinker.remove_all()
    _bus = None
