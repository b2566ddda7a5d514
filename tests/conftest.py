"""Shared fixtures: a scripted fake transport and a client wired to it.

The fake transport answers each batch with the next scripted status code
(None means "no response", i.e. a network error) and records every batch.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import pytest

from a11ops.client import A11ops
from a11ops.config import ClientConfig
from a11ops.models import Event
from a11ops.observability.config import ObservabilityConfig
from a11ops.transport import TransportResponse

# =============================================================================
# Helpers
# =============================================================================


class FakeTransport:
    """Scripted transport: statuses are consumed one per batch, then `default`."""

    def __init__(self, statuses: Sequence[int | None] = (), default: int | None = 200) -> None:
        self.statuses = list(statuses)
        self.default = default
        self.batches: list[list[Event]] = []
        self.closed = False

    async def send(self, events: Sequence[Event]) -> TransportResponse:
        self.batches.append(list(events))
        status = self.statuses.pop(0) if self.statuses else self.default
        if status is None:
            return TransportResponse(status_code=None, error="ConnectError: connection refused")
        return TransportResponse(status_code=status, body="{}")

    async def aclose(self) -> None:
        self.closed = True

    @property
    def sent(self) -> list[Event]:
        return [event for batch in self.batches for event in batch]


def make_config(**overrides) -> ClientConfig:
    """Deterministic config: no env leakage, no backoff waits."""
    values = dict(
        api_key="test-key",
        endpoint="https://collector.test",
        environment="test",
        release="1.0.0",
        server_name="test-host",
        auto_capture_errors=False,
        auto_breadcrumbs=False,
        max_breadcrumbs=100,
        rate_limits={},
        queue_size=100,
        batch_size=10,
        max_attempts=5,
        backoff_base=0.0,
        backoff_max=0.0,
        request_timeout=1.0,
        flush_interval=0.01,
        shutdown_timeout=1.0,
        observability=ObservabilityConfig(
            log_formatter="structlog",
            log_destination="stderr",
            log_level="WARNING",
            log_format="json",
            log_path=None,
            events_path=None,
            setup_logging=True,
        ),
    )
    values.update(overrides)
    return ClientConfig(**values)


def make_client(transport: FakeTransport | None = None, **overrides) -> A11ops:
    return A11ops(config=make_config(**overrides), transport=transport or FakeTransport())


def raise_and_catch(exc: BaseException) -> BaseException:
    """Return `exc` with a real traceback attached."""
    try:
        raise exc
    except BaseException as caught:
        return caught


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_observability():
    """Reset emitter + logging state before and after each test."""
    from a11ops.observability.emitter import reset

    reset()
    yield
    reset()


@pytest.fixture(autouse=True)
def _restore_logger_levels():
    """Undo logger levels that tests set, so they don't leak across tests."""
    loggers = [logging.getLogger(name) for name in list(logging.root.manager.loggerDict)]
    levels = {logger: logger.level for logger in loggers}
    yield
    for logger, level in levels.items():
        logger.setLevel(level)
    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        if logger not in levels:
            logger.setLevel(logging.NOTSET)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def client(transport: FakeTransport) -> A11ops:
    c = make_client(transport)
    yield c
    c.disable_auto_breadcrumbs()
    c.uninstall_excepthook()
