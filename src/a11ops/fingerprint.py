"""Fingerprints: a stable identity for "the same" problem across occurrences.

Grouping happens on the collector. Locally, every occurrence is delivered
unless the host opts into per-severity suppression with
FingerprintRateLimiter.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from a11ops.severity import Severity

if TYPE_CHECKING:
    from a11ops.models import Event, ExceptionInfo


def normalize_fingerprint(parts: Iterable[object] | str) -> tuple[str, ...]:
    """Caller-supplied override → tuple of strings. A bare string is one part."""
    if isinstance(parts, str):
        return (parts,)
    result = tuple(str(p) for p in parts)
    if not result:
        raise ValueError("fingerprint override must contain at least one part")
    return result


def derive_fingerprint(
    exception: ExceptionInfo | None = None,
    title: str = "",
    category: str = "",
    override: Iterable[object] | str | None = None,
) -> tuple[str, ...]:
    """Pick the grouping identity for an event.

    Priority: explicit override > (error kind, top stack location) >
    (title, category).
    """
    if override is not None:
        return normalize_fingerprint(override)
    if exception is not None and exception.top_location is not None:
        return (exception.kind, exception.top_location)
    return (title, category)


def group_id(fingerprint: tuple[str, ...]) -> str:
    """Blake2b-128 hash of the fingerprint. Same parts, same id."""
    payload = json.dumps(list(fingerprint), separators=(",", ":"))
    return hashlib.blake2b(payload.encode(), digest_size=16).hexdigest()


class FingerprintRateLimiter:
    """Optional local suppression of repeated fingerprints.

    `windows` maps a severity to a cooldown in seconds. Severities without
    a window are never suppressed; the default is no windows at all.
    """

    def __init__(
        self,
        windows: Mapping[Severity | str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._windows: dict[Severity, float] = {
            Severity.parse(sev): float(seconds)
            for sev, seconds in (windows or {}).items()
            if float(seconds) > 0
        }
        self._clock = clock
        # Per severity, group_id → last accepted time, oldest first
        self._last_seen: dict[Severity, OrderedDict[str, float]] = {sev: OrderedDict() for sev in self._windows}

    @property
    def enabled(self) -> bool:
        return bool(self._windows)

    def should_suppress(self, event: Event) -> bool:
        """True if the same (severity, fingerprint) was let through within its window.

        A call that is not suppressed records the occurrence. Entries whose
        window has passed are discarded, so the table only holds fingerprints
        that could still be suppressed.
        """
        window = self._windows.get(event.severity)
        if window is None:
            return False
        seen = self._last_seen[event.severity]
        now = self._clock()
        while seen:
            oldest, at = next(iter(seen.items()))
            if now - at < window:
                break
            del seen[oldest]
        if event.group_id in seen:
            return True
        seen[event.group_id] = now
        return False

    def __len__(self) -> int:
        return sum(len(seen) for seen in self._last_seen.values())

    def reset(self) -> None:
        for seen in self._last_seen.values():
            seen.clear()
