"""Breadcrumb Ring Buffer: a bounded FIFO trail of diagnostic notes.

The trail keeps the N most recent breadcrumbs in insertion order and is
snapshotted into every captured error. Malformed input is normalized rather
than rejected; losing a breadcrumb is worse than keeping an odd one.
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from a11ops.errors import InvalidSeverityError
from a11ops.models import Breadcrumb, utcnow
from a11ops.severity import Severity

DEFAULT_CAPACITY = 100

_FIELDS = ("type", "category", "message", "level", "data", "timestamp")


def _coerce_level(value: Any) -> Severity:
    if value is None:
        return Severity.INFO
    try:
        return Severity.parse(value)
    except InvalidSeverityError:
        return Severity.INFO


def _detach(value: Any) -> Any:
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        return repr(value)


def _coerce_data(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {str(k): _detach(v) for k, v in value.items()}
    return {"value": _detach(value)}


def normalize_breadcrumb(entry: Breadcrumb | Mapping[str, Any] | None = None, **fields: Any) -> Breadcrumb:
    """Build a Breadcrumb from a mapping and/or keyword fields.

    Missing level → info, missing message → "", missing timestamp → now.
    Unknown keys are folded into `data`.
    """
    if isinstance(entry, Breadcrumb) and not fields:
        return replace(entry, data=_coerce_data(entry.data))

    raw: dict[str, Any] = {}
    if isinstance(entry, Breadcrumb):
        raw.update(entry.to_dict())
        raw["level"] = entry.level
        raw["timestamp"] = entry.timestamp
    elif isinstance(entry, Mapping):
        raw.update(entry)
    elif entry is not None:
        raw["message"] = entry
    raw.update(fields)

    data = _coerce_data(raw.get("data"))
    for key, value in raw.items():
        if key not in _FIELDS:
            data.setdefault(str(key), _detach(value))

    timestamp = raw.get("timestamp")
    if not isinstance(timestamp, datetime):
        timestamp = utcnow()

    message = raw.get("message")
    return Breadcrumb(
        type=str(raw.get("type") or "default"),
        category=str(raw.get("category") or ""),
        message="" if message is None else str(message),
        level=_coerce_level(raw.get("level")),
        data=data,
        timestamp=timestamp,
    )


class BreadcrumbTrail:
    """Fixed-capacity, append-only trail. Oldest entries fall off the front."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("breadcrumb capacity must be at least 1")
        self._items: deque[Breadcrumb] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def add(self, entry: Breadcrumb | Mapping[str, Any] | None = None, **fields: Any) -> Breadcrumb:
        crumb = normalize_breadcrumb(entry, **fields)
        self._items.append(crumb)
        return crumb

    def snapshot(self) -> tuple[Breadcrumb, ...]:
        """Oldest → newest. Each breadcrumb carries its own copy of `data`."""
        return tuple(replace(crumb, data=_coerce_data(crumb.data)) for crumb in self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class BreadcrumbHandler(logging.Handler):
    """Turns stdlib log records into breadcrumbs.

    Installed on the root logger when auto_breadcrumbs is on. Records from
    the SDK's own loggers and its HTTP stack are skipped so that delivery
    doesn't feed the trail it is delivering.
    """

    IGNORED_LOGGERS = ("a11ops", "httpx", "httpcore")

    def __init__(self, trail: BreadcrumbTrail, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._trail = trail

    def _ignored(self, name: str) -> bool:
        return any(name == prefix or name.startswith(prefix + ".") for prefix in self.IGNORED_LOGGERS)

    def emit(self, record: logging.LogRecord) -> None:
        if self._ignored(record.name):
            return
        try:
            self._trail.add(
                type="log",
                category=record.name,
                message=record.getMessage(),
                level=Severity.from_log_level(record.levelno),
                data={"logger": record.name, "module": record.module, "lineno": record.lineno},
            )
        except Exception:
            self.handleError(record)
