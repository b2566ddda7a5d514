"""SDK diagnostics logging, composed from a formatter and a destination.

    formatter    how a record is rendered   A11OPS_LOG_FORMATTER   structlog | stdlib
    destination  where the line is written  A11OPS_LOG_DESTINATION stderr | jsonl

setup_logging() asks the formatter for a logging.Formatter, hands it to the
destination's handler and attaches that handler to the "a11ops" logger,
which then stops propagating. The root logger, its level and handlers, and
the host's own structlog configuration are never touched.

SDK modules log through get_logger(name):

    get_logger("a11ops.pipeline").warning("transport.send.crashed", batch_size=3)

Hosts can plug in their own pieces before the client is constructed:

    register_destination("syslog", SyslogDestination)
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from a11ops.observability.config import ObservabilityConfig

# Marks the handler owned by a11ops
SDK_LOGGER = "a11ops"
_MANAGED = "_a11ops_managed"


@runtime_checkable
class LogFormatter(Protocol):
    def build(self, config: ObservabilityConfig) -> logging.Formatter: ...

    def logger(self, name: str) -> Any: ...


@runtime_checkable
class LogDestination(Protocol):
    """Constructed with the ObservabilityConfig."""

    def handler(self, formatter: logging.Formatter) -> logging.Handler: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructlogFormatter:
    """structlog front end wrapped around the SDK's stdlib loggers.

    Loggers are wrapped one by one instead of calling structlog.configure(),
    which would replace whatever structlog setup the host has.
    """

    def __init__(self) -> None:
        self._processors: list[Any] = []

    def build(self, config: ObservabilityConfig) -> logging.Formatter:
        import structlog

        if config.log_format == "console":
            renderer: Any = structlog.dev.ConsoleRenderer(colors=False)
        else:
            renderer = structlog.processors.JSONRenderer()

        self._processors = [
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ]
        return structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )

    def logger(self, name: str) -> Any:
        import structlog

        return structlog.wrap_logger(
            logging.getLogger(name),
            processors=self._processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
        )


class StdlibFormatter:
    """No structlog at runtime: one JSON object per line, or plain text for consoles."""

    def build(self, config: ObservabilityConfig) -> logging.Formatter:
        if config.log_format == "console":
            return logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        return _JsonLineFormatter()

    def logger(self, name: str) -> Any:
        return _KeywordLogger(logging.getLogger(name))


class _JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        line.update(getattr(record, "fields", {}))
        if record.exc_info and record.exc_info[1] is not None:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class _KeywordLogger:
    """Lets a stdlib logger take logger.info("event.name", key=value).

    The keyword fields ride on the record as `fields`.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _emit(self, level: int, event: str, exc_info: Any = None, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if exc_info is True:
            exc_info = sys.exc_info()
            if exc_info[0] is None:
                exc_info = None
        self._logger.log(level, event, exc_info=exc_info or None, extra={"fields": fields})

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, **fields)

    def exception(self, event: str, **fields: Any) -> None:
        fields.setdefault("exc_info", True)
        self._emit(logging.ERROR, event, **fields)


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------


class StderrDestination:
    def __init__(self, config: ObservabilityConfig) -> None:
        pass

    def handler(self, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        return handler

    def close(self) -> None:
        pass


class FileDestination:
    """Append lines to A11OPS_LOG_PATH (default ./a11ops.jsonl)."""

    def __init__(self, config: ObservabilityConfig) -> None:
        self._path = Path(config.log_path or "a11ops.jsonl")
        self._handler: logging.Handler | None = None

    def handler(self, formatter: logging.Formatter) -> logging.Handler:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handler = logging.FileHandler(self._path, encoding="utf-8")
        self._handler.setFormatter(formatter)
        return self._handler

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None


# ---------------------------------------------------------------------------
# Registry and module state
# ---------------------------------------------------------------------------

_registry: dict[str, dict[str, type]] = {
    "formatter": {"structlog": StructlogFormatter, "stdlib": StdlibFormatter},
    "destination": {"stderr": StderrDestination, "jsonl": FileDestination},
}

_formatter: LogFormatter | None = None
_destination: LogDestination | None = None


def register_formatter(name: str, cls: type) -> None:
    _registry["formatter"][name] = cls


def register_destination(name: str, cls: type) -> None:
    _registry["destination"][name] = cls


def _lookup(kind: str, name: str) -> type:
    try:
        return _registry[kind][name]
    except KeyError:
        raise ValueError(
            f"Unknown log {kind}: {name!r}. Known: {sorted(_registry[kind])}. "
            f"Add one with register_{kind}()."
        ) from None


def _detach_managed(sdk: logging.Logger) -> None:
    for handler in [h for h in sdk.handlers if getattr(h, _MANAGED, False)]:
        sdk.removeHandler(handler)


def setup_logging(config: ObservabilityConfig) -> None:
    """Attach the configured formatter × destination to the "a11ops" logger."""
    global _formatter, _destination

    formatter = _lookup("formatter", config.log_formatter)()
    destination = _lookup("destination", config.log_destination)(config)

    handler = destination.handler(formatter.build(config))
    setattr(handler, _MANAGED, True)

    sdk = logging.getLogger(SDK_LOGGER)
    _detach_managed(sdk)
    sdk.addHandler(handler)
    sdk.setLevel(logging.getLevelNamesMapping().get(config.log_level.upper(), logging.INFO))
    sdk.propagate = False

    if _destination is not None:
        _destination.close()
    _formatter, _destination = formatter, destination


def get_logger(name: str = "a11ops") -> Any:
    """Logger from the active formatter; a keyword-capable stdlib logger before setup."""
    if _formatter is None:
        return _KeywordLogger(logging.getLogger(name))
    return _formatter.logger(name)


def shutdown_logging() -> None:
    global _formatter, _destination

    sdk = logging.getLogger(SDK_LOGGER)
    _detach_managed(sdk)
    sdk.setLevel(logging.NOTSET)
    sdk.propagate = True
    if _destination is not None:
        _destination.close()
    _formatter = _destination = None
