"""Settings for the SDK's own diagnostics (not for the events it ships).

    A11OPS_LOG_FORMATTER    structlog | stdlib          default structlog
    A11OPS_LOG_DESTINATION  stderr | jsonl              default stderr
    A11OPS_LOG_FORMAT       json | console              default json
    A11OPS_LOG_LEVEL                                    default INFO
    A11OPS_LOG_PATH         file for the jsonl destination
    A11OPS_EVENTS_PATH      mirror lifecycle events to this JSONL file
    A11OPS_SETUP_LOGGING    off leaves the host's logging config alone
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env(name: str, default: str | None = None) -> str | None:
    return os.environ.get(f"A11OPS_{name}", default)


@dataclass
class ObservabilityConfig:
    log_formatter: str = field(default_factory=lambda: _env("LOG_FORMATTER", "structlog"))
    log_destination: str = field(default_factory=lambda: _env("LOG_DESTINATION", "stderr"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: _env("LOG_FORMAT", "json"))
    log_path: str | None = field(default_factory=lambda: _env("LOG_PATH"))
    events_path: str | None = field(default_factory=lambda: _env("EVENTS_PATH"))
    setup_logging: bool = field(
        default_factory=lambda: _env("SETUP_LOGGING", "on").strip().lower()
        in ("1", "true", "on", "yes")
    )
