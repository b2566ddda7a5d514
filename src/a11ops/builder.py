"""Event Builder: raw error / message / alert request → normalized Event.

Every Event, however it originates, leaves here with the same shape:
severity validated, fingerprint and group id derived, caller payloads
deep-copied, context snapshot attached.
"""

from __future__ import annotations

import copy
import socket
import traceback
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from a11ops.breadcrumbs import BreadcrumbTrail
from a11ops.config import ClientConfig
from a11ops.errors import InvalidAlertError
from a11ops.fingerprint import derive_fingerprint, group_id
from a11ops.models import Event, ExceptionInfo, StackFrame
from a11ops.scope import ContextStore
from a11ops.severity import Severity

# Keys of a direct alert request that are not copied into `extra`
_ALERT_RESERVED = frozenset({"title", "message", "priority", "severity", "fingerprint", "metadata"})


def exception_info(error: BaseException) -> ExceptionInfo:
    """Structured origin of a failure: type, value, traceback frames."""
    kind = type(error)
    frames = tuple(
        StackFrame(filename=fs.filename, function=fs.name, lineno=fs.lineno)
        for fs in traceback.extract_tb(error.__traceback__)
    )
    return ExceptionInfo(
        kind=kind.__qualname__,
        value=str(error),
        module=kind.__module__,
        frames=frames,
    )


class EventBuilder:
    """Assembles Events from the client's context store and breadcrumb trail."""

    def __init__(
        self,
        config: ClientConfig,
        scope: ContextStore,
        trail: BreadcrumbTrail,
    ) -> None:
        self._config = config
        self._scope = scope
        self._trail = trail
        self._server_name = config.server_name or socket.gethostname()

    def _build(
        self,
        *,
        severity: Severity,
        title: str,
        message: str,
        category: str,
        extra: Mapping[str, Any] | None,
        fingerprint: Iterable[object] | str | None,
        exception: ExceptionInfo | None = None,
        attach_breadcrumbs: bool = True,
    ) -> Event:
        parts = derive_fingerprint(exception, title=title, category=category, override=fingerprint)
        user, contexts = self._scope.snapshot()
        return Event(
            severity=severity,
            title=title,
            message=message,
            category=category,
            fingerprint=parts,
            group_id=group_id(parts),
            extra=copy.deepcopy(dict(extra)) if extra else {},
            user=user,
            contexts=contexts,
            breadcrumbs=self._trail.snapshot() if attach_breadcrumbs else (),
            exception=exception,
            event_id=uuid.uuid4().hex,
            environment=self._config.environment,
            release=self._config.release,
            server_name=self._server_name,
        )

    def build_from_error(
        self,
        error: BaseException,
        *,
        level: Severity | str = Severity.ERROR,
        extra: Mapping[str, Any] | None = None,
        fingerprint: Iterable[object] | str | None = None,
        title: str | None = None,
    ) -> Event:
        severity = Severity.parse(level)
        info = exception_info(error)
        message = info.value or info.kind
        return self._build(
            severity=severity,
            title=title or info.kind,
            message=message,
            category="error",
            extra=extra,
            fingerprint=fingerprint,
            exception=info,
        )

    def build_from_message(
        self,
        text: str,
        level: Severity | str = Severity.INFO,
        *,
        extra: Mapping[str, Any] | None = None,
        fingerprint: Iterable[object] | str | None = None,
    ) -> Event:
        severity = Severity.parse(level)
        text = "" if text is None else str(text)
        return self._build(
            severity=severity,
            title=text,
            message=text,
            category="message",
            extra=extra,
            fingerprint=fingerprint,
        )

    def build_from_alert_request(
        self,
        request: Mapping[str, Any],
        *,
        default_severity: Severity | str = Severity.INFO,
        attach_breadcrumbs: bool | None = None,
    ) -> Event:
        """Direct alert: {title, message?, priority|severity?, metadata?, **fields}.

        Everything except the reserved keys lands in `extra`. Breadcrumbs are
        only attached when asked for; direct alerts stand alone.
        """
        if not isinstance(request, Mapping):
            raise InvalidAlertError(f"alert request must be a mapping, got {type(request).__name__}")
        title = request.get("title")
        if not isinstance(title, str) or not title.strip():
            raise InvalidAlertError("alert request requires a non-empty 'title'")

        level = request.get("priority") or request.get("severity") or default_severity
        severity = Severity.parse(level)

        extra: dict[str, Any] = {}
        metadata = request.get("metadata")
        if metadata is not None:
            if not isinstance(metadata, Mapping):
                raise InvalidAlertError("alert 'metadata' must be a mapping")
            extra.update(metadata)
        for key, value in request.items():
            if key not in _ALERT_RESERVED:
                extra[key] = value

        message = request.get("message")
        if attach_breadcrumbs is None:
            attach_breadcrumbs = self._config.attach_breadcrumbs_to_alerts
        return self._build(
            severity=severity,
            title=title,
            message="" if message is None else str(message),
            category="alert",
            extra=extra,
            fingerprint=request.get("fingerprint"),
            attach_breadcrumbs=attach_breadcrumbs,
        )
