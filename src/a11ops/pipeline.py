"""Delivery Pipeline: bounded queue → batches → transport, with retry and backoff.

Per-item state machine:

    PENDING → SENDING → DELIVERED
                      → RETRYING → SENDING ...
                      → DROPPED

Transmission is the only suspending operation. Everything else
(enqueue, state transitions, eviction) is synchronous, so concurrent
capture calls, an explicit flush() and the background worker can
interleave without sending the same item twice: items become SENDING
the moment they are taken into a batch.

Delivery problems never raise into host code. They surface through
receipts and the DeliveryFailed lifecycle event.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from a11ops.config import ClientConfig
from a11ops.errors import InvalidSeverityError
from a11ops.models import DeliveryReceipt, Event, FlushResult
from a11ops.observability.emitter import emit
from a11ops.observability.events import (
    BatchTransmitted,
    DeliveryFailed,
    DeliveryRetrying,
    EventDelivered,
    EventDropped,
    EventEnqueued,
)
from a11ops.observability.logging import get_logger
from a11ops.queue import DeliveryQueue, QueueItem
from a11ops.severity import Severity
from a11ops.transport import Outcome, Transport, TransportResponse

# How long to wait when the only queued items are in flight elsewhere
_POLL_INTERVAL = 0.05
_MIN_IDLE = 0.05


def _get_logger():
    return get_logger("a11ops.pipeline")


class DeliveryPipeline:
    """Owns queued Events from enqueue until DELIVERED or DROPPED."""

    def __init__(
        self,
        transport: Transport,
        *,
        queue_size: int = 500,
        batch_size: int = 25,
        max_attempts: int = 5,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        request_timeout: float = 10.0,
        flush_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._transport = transport
        self._queue = DeliveryQueue(queue_size, clock=clock)
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._request_timeout = request_timeout
        self._flush_interval = flush_interval
        self._clock = clock
        self._sleep = sleep

        self._delivered_total = 0
        self._dropped_total = 0
        self._worker: asyncio.Task | None = None
        self._wake_event: asyncio.Event | None = None
        self._closed = False
        # Set only while stop() waits for the worker; captures stay accepted
        self._stopping = False

    @classmethod
    def from_config(cls, config: ClientConfig, transport: Transport, **kwargs) -> DeliveryPipeline:
        return cls(
            transport,
            queue_size=config.queue_size,
            batch_size=config.batch_size,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            request_timeout=config.request_timeout,
            flush_interval=config.flush_interval,
            **kwargs,
        )

    @property
    def queue(self) -> DeliveryQueue:
        return self._queue

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._closed

    # -- enqueue -----------------------------------------------------------

    def enqueue(self, event: Event) -> DeliveryReceipt:
        """Accept an event into the queue. Never suspends, never raises for capacity."""
        if not isinstance(event.severity, Severity):
            raise InvalidSeverityError(f"event severity must be a Severity, got {event.severity!r}")

        if self._closed:
            self._count_dropped(event, "shutdown", attempts=0)
            return DeliveryReceipt(event.event_id, accepted=False, reason="shutdown")

        item, evicted = self._queue.push(event)
        for victim in evicted:
            self._count_dropped(victim.event, "evicted", attempts=victim.attempt)

        if item is None:
            self._count_dropped(event, "queue_full", attempts=0)
            return DeliveryReceipt(event.event_id, accepted=False, reason="queue_full")

        emit(EventEnqueued(
            event_id=event.event_id,
            severity=event.severity.label,
            category=event.category,
            queue_depth=len(self._queue),
        ))
        return DeliveryReceipt(event.event_id, accepted=True, item=item)

    def _count_dropped(self, event: Event, reason: str, attempts: int) -> None:
        self._dropped_total += 1
        emit(EventDropped(
            event_id=event.event_id,
            severity=event.severity.label,
            reason=reason,
            attempts=attempts,
        ))

    # -- transmission ------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry after `attempt` failed attempts (1-based)."""
        return min(self._backoff_max, self._backoff_base * (2 ** (attempt - 1)))

    async def send_due(self, deadline: float | None = None) -> None:
        """One pass: send every PENDING and due RETRYING item, batch by batch.

        Stops taking new batches once the clock passes `deadline`.
        """
        while deadline is None or self._clock() < deadline:
            batch = self._queue.take_due(self._batch_size)
            if not batch:
                break
            await self._transmit(batch, deadline)

    async def _transmit(self, batch: list[QueueItem], deadline: float | None = None) -> None:
        events = [item.event for item in batch]
        started = self._clock()
        timeout = self._request_timeout
        if deadline is not None:
            timeout = max(0.0, min(timeout, deadline - started))
        try:
            response = await asyncio.wait_for(self._transport.send(events), timeout)
        except asyncio.CancelledError:
            # Abandoned mid-flight: put the batch back so nothing is stranded in SENDING
            for item in batch:
                item.attempt -= 1
                self._queue.mark_retrying(item, 0.0)
            raise
        except TimeoutError:
            response = TransportResponse(status_code=None, error=f"timed out after {timeout}s")
        except Exception as exc:
            _get_logger().exception(
                "transport.send.crashed",
                transport=type(self._transport).__name__,
                batch_size=len(batch),
            )
            response = TransportResponse(status_code=None, error=f"{type(exc).__name__}: {exc}")

        outcome = response.outcome
        emit(BatchTransmitted(
            batch_size=len(batch),
            status_code=response.status_code,
            outcome=outcome.value,
            latency_ms=(self._clock() - started) * 1000,
        ))

        if outcome is Outcome.DELIVERED:
            for item in batch:
                self._queue.mark_delivered(item)
                self._delivered_total += 1
                emit(EventDelivered(
                    event_id=item.event.event_id,
                    severity=item.event.severity.label,
                    attempts=item.attempt,
                ))
        elif outcome is Outcome.TERMINAL:
            self._drop_batch(batch, "rejected", response, terminal=True)
        else:
            self._schedule_retries(batch, response)

    def _schedule_retries(self, batch: list[QueueItem], response: TransportResponse) -> None:
        exhausted: list[QueueItem] = []
        for item in batch:
            if item.attempt >= self._max_attempts:
                exhausted.append(item)
                continue
            delay = self.backoff_delay(item.attempt)
            self._queue.mark_retrying(item, delay)
            emit(DeliveryRetrying(
                event_id=item.event.event_id,
                attempt=item.attempt,
                delay_seconds=delay,
                status_code=response.status_code,
                error=response.error,
            ))
        if exhausted:
            self._drop_batch(exhausted, "retries_exhausted", response, terminal=False)

    def _drop_batch(
        self,
        items: list[QueueItem],
        reason: str,
        response: TransportResponse,
        terminal: bool,
    ) -> None:
        for item in items:
            self._queue.mark_dropped(item, reason)
            self._count_dropped(item.event, reason, attempts=item.attempt)
        emit(DeliveryFailed(
            event_ids=tuple(item.event.event_id for item in items),
            status_code=response.status_code,
            error=response.error or (response.body[:500] if response.body else None),
            terminal=terminal,
        ))

    # -- flushing ----------------------------------------------------------

    async def flush(self, timeout: float | None = None) -> FlushResult:
        """Drain the queue, following retries, until empty or the deadline passes."""
        deadline = None if timeout is None else self._clock() + timeout
        delivered_before = self._delivered_total
        dropped_before = self._dropped_total

        while len(self._queue):
            await self.send_due(deadline)
            if not len(self._queue):
                break
            wait = self._queue.seconds_until_due()
            if wait is None:
                wait = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                wait = min(wait, remaining)
            if wait > 0:
                await self._sleep(wait)

        return FlushResult(
            delivered=self._delivered_total - delivered_before,
            dropped=self._dropped_total - dropped_before,
            remaining=len(self._queue),
        )

    async def deliver(self, receipt: DeliveryReceipt) -> DeliveryReceipt:
        """Drive delivery until this receipt's item is DELIVERED or DROPPED."""
        if not receipt.accepted:
            return receipt
        self.wake()
        while not receipt.done:
            await self.send_due()
            if receipt.done:
                break
            wait = self._queue.seconds_until_due()
            await receipt.wait(timeout=_POLL_INTERVAL if wait is None else wait)
        return receipt

    # -- background worker -------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the background sender on the running loop. Idempotent."""
        if self.running or self._closed or self._stopping:
            return
        loop = asyncio.get_running_loop()
        self._wake_event = asyncio.Event()
        self._worker = loop.create_task(self._run(), name="a11ops-delivery")

    def wake(self) -> None:
        if self._wake_event is not None:
            self._wake_event.set()

    async def _run(self) -> None:
        assert self._wake_event is not None
        while not (self._closed or self._stopping):
            wait = self._queue.seconds_until_due()
            if wait is None:
                wait = max(self._flush_interval, _MIN_IDLE)
            else:
                wait = min(wait, max(self._flush_interval, _MIN_IDLE))
            if wait > 0 and not self._wake_event.is_set():
                try:
                    await asyncio.wait_for(self._wake_event.wait(), wait)
                except TimeoutError:
                    pass
            else:
                await asyncio.sleep(0)
            self._wake_event.clear()
            if self._closed or self._stopping:
                break
            await self.send_due()

    async def stop(self, timeout: float | None = None) -> None:
        """Stop the background sender, letting an in-flight batch finish."""
        worker = self._worker
        self._worker = None
        if worker is None or worker.done():
            return
        self._stopping = True
        self.wake()
        try:
            await asyncio.wait_for(worker, timeout)
        except TimeoutError:
            _get_logger().warning("worker.stop.timeout", timeout=timeout)
        finally:
            self._stopping = False

    async def shutdown(self, timeout: float = 2.0) -> FlushResult:
        """Best-effort final delivery within `timeout`, then release everything.

        Whatever is still queued afterwards is DROPPED with reason "shutdown"
        so every receipt resolves.
        """
        deadline = self._clock() + timeout
        await self.stop(timeout)
        result = await self.flush(timeout=max(0.0, deadline - self._clock()))
        self._closed = True

        abandoned = self._queue.items()
        for item in abandoned:
            self._queue.mark_dropped(item, "shutdown")
            self._count_dropped(item.event, "shutdown", attempts=item.attempt)
        await self._transport.aclose()
        return FlushResult(
            delivered=result.delivered,
            dropped=result.dropped + len(abandoned),
            remaining=0,
        )
