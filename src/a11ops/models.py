"""Core records: breadcrumbs, events, delivery receipts.

Breadcrumbs and events are frozen dataclasses. An Event is built once by
the EventBuilder and queued by value; nothing mutates it afterwards.

Canonical wire shape of an event (see Event.to_payload):
    {event_id, timestamp, severity, title, message, category, fingerprint,
     group_id, extra, user, contexts, breadcrumbs, exception,
     environment, release, server_name, platform, sdk}
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from a11ops.severity import Severity

if TYPE_CHECKING:
    from a11ops.queue import QueueItem

SDK_NAME = "a11ops-python"
SDK_VERSION = "0.1.0"


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Breadcrumbs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Breadcrumb:
    """A timestamped note about a step the application took."""

    type: str = "default"
    category: str = ""
    message: str = ""
    level: Severity = Severity.INFO
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category,
            "message": self.message,
            "level": self.level.label,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StackFrame:
    filename: str
    function: str
    lineno: int | None

    @property
    def location(self) -> str:
        return f"{self.filename}:{self.function}:{self.lineno}"


@dataclass(frozen=True)
class ExceptionInfo:
    """Structured origin of a captured failure, used for fingerprinting."""

    kind: str
    value: str
    module: str
    frames: tuple[StackFrame, ...] = ()

    @property
    def top_location(self) -> str | None:
        """Innermost frame, i.e. where the exception was raised."""
        if not self.frames:
            return None
        return self.frames[-1].location

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "value": self.value,
            "module": self.module,
            "stacktrace": [
                {"filename": f.filename, "function": f.function, "lineno": f.lineno}
                for f in self.frames
            ],
        }


@dataclass(frozen=True)
class Event:
    """The normalized record sent to the collector.

    One error, message, or direct alert. `breadcrumbs`, `user` and
    `contexts` are copies taken at capture time.
    """

    severity: Severity
    title: str
    message: str
    category: str  # "error" | "message" | "alert"
    fingerprint: tuple[str, ...]
    group_id: str
    extra: dict[str, Any] = field(default_factory=dict)
    user: dict[str, Any] | None = None
    contexts: dict[str, Any] = field(default_factory=dict)
    breadcrumbs: tuple[Breadcrumb, ...] = ()
    exception: ExceptionInfo | None = None
    event_id: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    environment: str | None = None
    release: str | None = None
    server_name: str | None = None
    platform: str = "python"

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict for the wire."""
        payload: dict[str, Any] = {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.label,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "fingerprint": list(self.fingerprint),
            "group_id": self.group_id,
            "extra": self.extra,
            "contexts": self.contexts,
            "breadcrumbs": [b.to_dict() for b in self.breadcrumbs],
            "environment": self.environment,
            "release": self.release,
            "server_name": self.server_name,
            "platform": self.platform,
            "sdk": {"name": SDK_NAME, "version": SDK_VERSION},
        }
        if self.user is not None:
            payload["user"] = self.user
        if self.exception is not None:
            payload["exception"] = self.exception.to_dict()
        return payload


# ---------------------------------------------------------------------------
# Delivery results
# ---------------------------------------------------------------------------


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryState.DELIVERED, DeliveryState.DROPPED)


class DeliveryReceipt:
    """Returned by every capture and alert call. Never raises for delivery problems.

    `accepted` says whether the event made it into the queue. `state`
    follows the queued item; `await receipt.wait()` resolves once it is
    DELIVERED or DROPPED.
    """

    def __init__(
        self,
        event_id: str,
        accepted: bool,
        reason: str | None = None,
        item: QueueItem | None = None,
    ) -> None:
        self.event_id = event_id
        self.accepted = accepted
        self._reason = reason
        self._item = item

    @property
    def state(self) -> DeliveryState:
        if self._item is None:
            return DeliveryState.DROPPED
        return self._item.state

    @property
    def reason(self) -> str | None:
        if self._item is not None and self._item.drop_reason is not None:
            return self._item.drop_reason
        return self._reason

    @property
    def attempts(self) -> int:
        return self._item.attempt if self._item is not None else 0

    @property
    def done(self) -> bool:
        return self.state.is_terminal

    @property
    def delivered(self) -> bool:
        return self.state is DeliveryState.DELIVERED

    async def wait(self, timeout: float | None = None) -> DeliveryState:
        """Wait for DELIVERED or DROPPED. On timeout, returns the current state."""
        if self._item is None or self.done:
            return self.state
        try:
            await asyncio.wait_for(self._item.completed.wait(), timeout)
        except TimeoutError:
            pass
        return self.state

    def __bool__(self) -> bool:
        return self.accepted

    def __repr__(self) -> str:
        return (
            f"DeliveryReceipt(event_id={self.event_id!r}, accepted={self.accepted}, "
            f"state={self.state.value!r}, reason={self.reason!r})"
        )


@dataclass(frozen=True)
class FlushResult:
    delivered: int = 0
    dropped: int = 0
    remaining: int = 0

    @property
    def complete(self) -> bool:
        return self.remaining == 0
