"""A11ops: the client handle hosts construct once and pass around.

    client = A11ops(api_key="...", environment="production", release="1.4.2")
    client.set_user({"id": "user-123", "email": "a@example.com"})
    client.add_breadcrumb(type="user", category="auth", message="Login attempt")

    try:
        checkout()
    except PaymentError as exc:
        client.capture_error(exc, level="critical", fingerprint=["checkout", "payment-failed"])

    await client.critical("Checkout failed", "Order ORD-1 failed", orderId="ORD-1")
    await client.shutdown()

Capture calls are synchronous and return a DeliveryReceipt. The alert
shorthands are coroutines that resolve once the alert is DELIVERED or
DROPPED. Nothing here raises because of delivery problems; only misuse
(bad severity, missing alert title) raises.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from a11ops.breadcrumbs import BreadcrumbHandler, BreadcrumbTrail
from a11ops.builder import EventBuilder
from a11ops.config import ClientConfig
from a11ops.fingerprint import FingerprintRateLimiter
from a11ops.models import Breadcrumb, DeliveryReceipt, Event, FlushResult
from a11ops.observability.emitter import configure
from a11ops.observability.logging import get_logger
from a11ops.pipeline import DeliveryPipeline
from a11ops.scope import ContextStore
from a11ops.severity import Severity
from a11ops.transport import HttpTransport, Transport


def _get_logger():
    return get_logger("a11ops.client")


class A11ops:
    """Context store, breadcrumb trail, event builder and delivery pipeline behind one handle."""

    def __init__(
        self,
        api_key: str | None = None,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        **overrides: Any,
    ) -> None:
        if api_key is not None:
            overrides["api_key"] = api_key
        if config is None:
            config = ClientConfig.load(**overrides)
        elif overrides:
            config = config.replace(**overrides)
        self.config = config

        configure(config.observability)

        self._scope = ContextStore()
        self._trail = BreadcrumbTrail(config.max_breadcrumbs)
        self._builder = EventBuilder(config, self._scope, self._trail)
        self._rate_limiter = FingerprintRateLimiter(config.rate_limits)
        if transport is None:
            transport = HttpTransport(config.api_key, config.endpoint, config.request_timeout)
        self._pipeline = DeliveryPipeline.from_config(config, transport)

        self._breadcrumb_handler: BreadcrumbHandler | None = None
        self._previous_excepthook: Any = None
        self._previous_threading_excepthook: Any = None

        if config.auto_breadcrumbs:
            self.enable_auto_breadcrumbs()
        if config.auto_capture_errors:
            self.install_excepthook()

        _get_logger().debug(
            "client.initialized",
            endpoint=config.endpoint,
            environment=config.environment,
            release=config.release,
        )

    # -- accessors ---------------------------------------------------------

    @property
    def pipeline(self) -> DeliveryPipeline:
        return self._pipeline

    @property
    def builder(self) -> EventBuilder:
        return self._builder

    @property
    def user(self) -> dict[str, Any] | None:
        return self._scope.user

    @property
    def breadcrumbs(self) -> tuple[Breadcrumb, ...]:
        return self._trail.snapshot()

    # -- context -----------------------------------------------------------

    def set_user(self, user: Mapping[str, Any] | None) -> None:
        self._scope.set_user(user)

    def set_context(self, name: str, value: Any) -> None:
        self._scope.set_context(name, value)

    def add_breadcrumb(
        self, entry: Breadcrumb | Mapping[str, Any] | None = None, **fields: Any
    ) -> Breadcrumb:
        return self._trail.add(entry, **fields)

    def clear_breadcrumbs(self) -> None:
        self._trail.clear()

    # -- capture -----------------------------------------------------------

    def capture_error(
        self,
        error: BaseException | None = None,
        *,
        level: Severity | str = Severity.ERROR,
        extra: Mapping[str, Any] | None = None,
        fingerprint: Iterable[object] | str | None = None,
    ) -> DeliveryReceipt:
        """Capture an exception (default: the one currently being handled)."""
        if error is None:
            error = sys.exc_info()[1]
            if error is None:
                raise TypeError("capture_error() needs an exception outside an except block")
        event = self._builder.build_from_error(
            error, level=level, extra=extra, fingerprint=fingerprint
        )
        return self._submit(event)

    def capture_message(
        self,
        message: str,
        level: Severity | str = Severity.INFO,
        *,
        extra: Mapping[str, Any] | None = None,
        fingerprint: Iterable[object] | str | None = None,
    ) -> DeliveryReceipt:
        event = self._builder.build_from_message(
            message, level, extra=extra, fingerprint=fingerprint
        )
        return self._submit(event)

    def _submit(self, event: Event) -> DeliveryReceipt:
        if self._rate_limiter.should_suppress(event):
            return DeliveryReceipt(event.event_id, accepted=False, reason="rate_limited")
        receipt = self._pipeline.enqueue(event)
        self._ensure_worker()
        return receipt

    def _ensure_worker(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop: items wait for flush()/close()
            return
        self._pipeline.start()
        self._pipeline.wake()

    # -- alert façade ------------------------------------------------------

    @staticmethod
    def _alert_request(
        title: str | Mapping[str, Any] | None,
        message: str | None,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        if isinstance(title, Mapping):
            request = dict(title)
        else:
            request = {} if title is None else {"title": title}
        if message is not None:
            request["message"] = message
        request.update(fields)
        return request

    async def alert(
        self,
        title: str | Mapping[str, Any] | None = None,
        message: str | None = None,
        **fields: Any,
    ) -> DeliveryReceipt:
        """Send one alert and wait for it to be delivered or dropped.

        Accepts a request mapping ({title, message, priority, ...}),
        positional (title, message), or keyword fields. Fields other than
        title/message/priority/severity/fingerprint/metadata go to `extra`.
        """
        request = self._alert_request(title, message, fields)
        event = self._builder.build_from_alert_request(request)
        return await self._deliver(event)

    async def _alert_at(
        self,
        severity: Severity,
        title: str | Mapping[str, Any] | None,
        message: str | None,
        fields: dict[str, Any],
    ) -> DeliveryReceipt:
        request = self._alert_request(title, message, fields)
        request.pop("severity", None)
        request["priority"] = severity
        event = self._builder.build_from_alert_request(request)
        return await self._deliver(event)

    async def _deliver(self, event: Event) -> DeliveryReceipt:
        receipt = self._submit(event)
        return await self._pipeline.deliver(receipt)

    async def debug(self, title=None, message=None, **fields: Any) -> DeliveryReceipt:
        return await self._alert_at(Severity.DEBUG, title, message, fields)

    async def info(self, title=None, message=None, **fields: Any) -> DeliveryReceipt:
        return await self._alert_at(Severity.INFO, title, message, fields)

    async def warning(self, title=None, message=None, **fields: Any) -> DeliveryReceipt:
        return await self._alert_at(Severity.WARNING, title, message, fields)

    async def error(self, title=None, message=None, **fields: Any) -> DeliveryReceipt:
        return await self._alert_at(Severity.ERROR, title, message, fields)

    async def critical(self, title=None, message=None, **fields: Any) -> DeliveryReceipt:
        return await self._alert_at(Severity.CRITICAL, title, message, fields)

    # -- lifecycle ---------------------------------------------------------

    async def flush(self, timeout: float | None = None) -> FlushResult:
        return await self._pipeline.flush(timeout)

    async def shutdown(self, timeout: float | None = None) -> FlushResult:
        """Final best-effort delivery. Call from the host's termination path."""
        self.disable_auto_breadcrumbs()
        self.uninstall_excepthook()
        result = await self._pipeline.shutdown(
            self.config.shutdown_timeout if timeout is None else timeout
        )
        _get_logger().debug(
            "client.shutdown",
            delivered=result.delivered,
            dropped=result.dropped,
        )
        return result

    def close(self, timeout: float | None = None) -> FlushResult:
        """Synchronous shutdown() for hosts without a running event loop."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.shutdown(timeout))
        raise RuntimeError("close() called inside a running event loop; await shutdown() instead")

    async def __aenter__(self) -> A11ops:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # -- automatic capture -------------------------------------------------

    def enable_auto_breadcrumbs(self, level: int = logging.INFO) -> None:
        """Record stdlib log records as breadcrumbs."""
        if self._breadcrumb_handler is not None:
            return
        self._breadcrumb_handler = BreadcrumbHandler(self._trail, level=level)
        logging.getLogger().addHandler(self._breadcrumb_handler)

    def disable_auto_breadcrumbs(self) -> None:
        if self._breadcrumb_handler is None:
            return
        logging.getLogger().removeHandler(self._breadcrumb_handler)
        self._breadcrumb_handler = None

    def install_excepthook(self) -> None:
        """Capture uncaught exceptions (main thread and threads) at critical."""
        if self._previous_excepthook is not None:
            return
        self._previous_excepthook = sys.excepthook
        self._previous_threading_excepthook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook

    def uninstall_excepthook(self) -> None:
        if self._previous_excepthook is None:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._previous_excepthook
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._previous_threading_excepthook
        self._previous_excepthook = None
        self._previous_threading_excepthook = None

    def _capture_uncaught(self, exc: BaseException, mechanism: str) -> DeliveryReceipt:
        return self.capture_error(
            exc,
            level=Severity.CRITICAL,
            extra={"mechanism": mechanism, "handled": False},
        )

    def _excepthook(self, exc_type, exc, tb) -> None:
        previous = self._previous_excepthook or sys.__excepthook__
        if exc is not None and not issubclass(exc_type, KeyboardInterrupt):
            self._capture_uncaught(exc, "excepthook")
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                # Process is about to exit: last chance to send
                asyncio.run(self._flush_before_exit())
        previous(exc_type, exc, tb)

    async def _flush_before_exit(self) -> None:
        try:
            await self._pipeline.flush(timeout=self.config.shutdown_timeout)
        finally:
            await self._pipeline.transport.aclose()

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        previous = self._previous_threading_excepthook or threading.__excepthook__
        if args.exc_value is not None and not issubclass(args.exc_type, SystemExit):
            self._capture_uncaught(args.exc_value, "threading")
        previous(args)
