"""Exceptions raised for caller misuse.

Delivery problems are never raised into host code; they are reported
through receipts and the DeliveryFailed lifecycle event.
"""

from __future__ import annotations


class A11opsError(Exception):
    """Base class for a11ops errors."""


class InvalidSeverityError(A11opsError, ValueError):
    """A severity name that isn't one of debug/info/warning/error/critical."""


class InvalidAlertError(A11opsError, ValueError):
    """A direct alert request missing a required field."""


class ConfigurationError(A11opsError, ValueError):
    """Client configuration that can't be used (bad endpoint, bad limits)."""
