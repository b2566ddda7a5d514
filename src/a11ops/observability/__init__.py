"""The SDK's own diagnostics: structured logs and delivery lifecycle events.

    configure(cfg)        set up logging and the event bus (the client does this)
    emit(event)           publish a lifecycle event; dropped until configured
    get_logger(name)      keyword-style structured logger
    A11opsEventLinker     subscribe: @A11opsEventLinker.on(DeliveryFailed)

Formatters and destinations are pluggable through register_formatter() and
register_destination().
"""

from a11ops.observability.config import ObservabilityConfig
from a11ops.observability.emitter import configure, emit, is_configured, reset
from a11ops.observability.events import (
    BatchTransmitted,
    DeliveryFailed,
    DeliveryRetrying,
    EventDelivered,
    EventDropped,
    EventEnqueued,
)
from a11ops.observability.linker import A11opsEventLinker
from a11ops.observability.logging import (
    LogDestination,
    LogFormatter,
    get_logger,
    register_destination,
    register_formatter,
)

__all__ = [
    # Core API
    "emit",
    "configure",
    "is_configured",
    "reset",
    "ObservabilityConfig",
    "A11opsEventLinker",
    # Logging (swappable)
    "get_logger",
    "LogFormatter",
    "LogDestination",
    "register_formatter",
    "register_destination",
    # Queue
    "EventEnqueued",
    "EventDropped",
    # Transmission
    "BatchTransmitted",
    "EventDelivered",
    "DeliveryRetrying",
    "DeliveryFailed",
]
