"""Mirror every delivery lifecycle event into a JSON Lines file (A11OPS_EVENTS_PATH).

One object per line: {"type": "<EventClass>", **fields}.
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
from a11ops.observability.sinks.jsonl_sink import JsonlSink

LIFECYCLE_EVENTS = (
    EventEnqueued,
    EventDropped,
    BatchTransmitted,
    EventDelivered,
    DeliveryRetrying,
    DeliveryFailed,
)


def register_jsonl_subscriber(path: str) -> JsonlSink:
    sink = JsonlSink(path)

    @A11opsEventLinker.on(*LIFECYCLE_EVENTS)
    def _record(event: object) -> None:
        sink.write({"type": type(event).__name__, **asdict(event)})  # type: ignore[call-overload]

    return sink
