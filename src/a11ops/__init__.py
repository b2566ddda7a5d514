"""a11ops: capture-and-forward observability and alerting client.

Public API:
    A11ops(api_key=..., **options)   client handle; construct once, pass around
    client.set_user / set_context / add_breadcrumb
    client.capture_error / capture_message      sync, return a DeliveryReceipt
    await client.alert / info / warning / error / critical
    await client.flush() / shutdown(), client.close()

Delivery failures surface through receipts and the DeliveryFailed
lifecycle event (see a11ops.observability), never as exceptions.
"""

from a11ops.client import A11ops
from a11ops.config import ClientConfig, resolve_api_key
from a11ops.errors import (
    A11opsError,
    ConfigurationError,
    InvalidAlertError,
    InvalidSeverityError,
)
from a11ops.models import (
    SDK_VERSION,
    Breadcrumb,
    DeliveryReceipt,
    DeliveryState,
    Event,
    ExceptionInfo,
    FlushResult,
)
from a11ops.severity import Severity
from a11ops.transport import HttpTransport, Transport, TransportResponse

__version__ = SDK_VERSION

__all__ = [
    "A11ops",
    "ClientConfig",
    "resolve_api_key",
    # Records
    "Breadcrumb",
    "Event",
    "ExceptionInfo",
    "Severity",
    # Delivery
    "DeliveryReceipt",
    "DeliveryState",
    "FlushResult",
    "Transport",
    "TransportResponse",
    "HttpTransport",
    # Errors
    "A11opsError",
    "InvalidSeverityError",
    "InvalidAlertError",
    "ConfigurationError",
]
