"""Severity: the ordered classification shared by breadcrumbs, events and alerts."""

from __future__ import annotations

import logging
from enum import IntEnum

from a11ops.errors import InvalidSeverityError


class Severity(IntEnum):
    """debug < info < warning < error < critical.

    Values line up with the stdlib logging levels.
    """

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @property
    def label(self) -> str:
        return self.name.lower()

    def __str__(self) -> str:
        return self.label

    @classmethod
    def parse(cls, value: Severity | str) -> Severity:
        """Resolve a Severity or a case-insensitive severity name.

        Raises InvalidSeverityError for anything else.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        names = ", ".join(s.label for s in cls)
        raise InvalidSeverityError(f"Unknown severity {value!r}. Expected one of: {names}.")

    @classmethod
    def from_log_level(cls, levelno: int) -> Severity:
        """Map a stdlib logging level number onto the nearest severity at or below it."""
        for severity in sorted(cls, reverse=True):
            if levelno >= severity:
                return severity
        return cls.DEBUG
