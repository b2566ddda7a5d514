"""Client configuration: env vars > saved config file > defaults.

The client consumes a resolved {api_key, endpoint} pair plus delivery
tuning. How the key got there (env var, a config file written by some other
tool, a prompt) is the host's business; this module only reads.

Env vars use the A11OPS_{NAME} convention (e.g. A11OPS_API_URL).
Saved config default: ~/.a11ops/config.json ({"apiKey": "...", ...}).
A .yaml or .yml path passed to load() is read with PyYAML instead.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from a11ops.errors import ConfigurationError
from a11ops.observability.config import ObservabilityConfig
from a11ops.observability.logging import get_logger
from a11ops.severity import Severity

DEFAULT_ENDPOINT = "https://api.a11ops.com"
DEFAULT_CONFIG_PATH = Path("~/.a11ops/config.json").expanduser()

_TRUTHY = {"1", "true", "on", "yes"}


def _bool_env(var: str, default: bool) -> bool:
    raw = os.environ.get(var)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _int_env(var: str, default: int) -> int:
    """Parse an integer from an environment variable with a helpful error on bad input."""
    raw = os.environ.get(var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ConfigurationError(f"{var}={raw!r} is not a valid integer") from err


def _float_env(var: str, default: float) -> float:
    raw = os.environ.get(var)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ConfigurationError(f"{var}={raw!r} is not a valid number") from err


def parse_rate_limits(raw: str | None) -> dict[str, float]:
    """'info=60,warning=30' → {"info": 60.0, "warning": 30.0}."""
    if not raw:
        return {}
    limits: dict[str, float] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        name, sep, seconds = part.partition("=")
        if not sep:
            raise ConfigurationError(f"Bad rate limit entry {part!r}, expected severity=seconds")
        try:
            limits[Severity.parse(name).label] = float(seconds)
        except ValueError as err:
            raise ConfigurationError(f"Bad rate limit entry {part!r}: {err}") from err
    return limits


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    """Read the saved config file. Missing, unreadable or malformed → {}."""
    file_path = path or DEFAULT_CONFIG_PATH
    if not file_path.exists():
        return {}
    try:
        text = file_path.read_text(encoding="utf-8")
        if file_path.suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        get_logger("a11ops.config").warning(
            "config.file_ignored", path=str(file_path), error=f"{type(exc).__name__}: {exc}"
        )
        return {}
    return raw if isinstance(raw, dict) else {}


def resolve_api_key(path: Path | None = None) -> str | None:
    """A11OPS_API_KEY env var, else apiKey from the saved config file."""
    env_key = os.environ.get("A11OPS_API_KEY")
    if env_key:
        return env_key.strip()
    key = read_config_file(path).get("apiKey")
    return str(key).strip() if key else None


# Saved-file key → (field name, env var that takes precedence)
_FILE_KEYS: dict[str, tuple[str, str]] = {
    "apiKey": ("api_key", "A11OPS_API_KEY"),
    "baseUrl": ("endpoint", "A11OPS_API_URL"),
    "endpoint": ("endpoint", "A11OPS_API_URL"),
    "environment": ("environment", "A11OPS_ENVIRONMENT"),
    "release": ("release", "A11OPS_RELEASE"),
}


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration, env-var driven.

    The API key is hidden from repr to avoid accidental logging.
    """

    api_key: str | None = field(
        default_factory=lambda: os.environ.get("A11OPS_API_KEY"), repr=False
    )
    endpoint: str = field(
        default_factory=lambda: os.environ.get("A11OPS_API_URL", DEFAULT_ENDPOINT)
    )
    environment: str = field(
        default_factory=lambda: os.environ.get("A11OPS_ENVIRONMENT", "development")
    )
    release: str | None = field(
        default_factory=lambda: os.environ.get("A11OPS_RELEASE")
    )
    server_name: str | None = field(
        default_factory=lambda: os.environ.get("A11OPS_SERVER_NAME")
    )

    # --- Capture ---
    auto_capture_errors: bool = field(
        default_factory=lambda: _bool_env("A11OPS_AUTO_CAPTURE_ERRORS", False)
    )
    auto_breadcrumbs: bool = field(
        default_factory=lambda: _bool_env("A11OPS_AUTO_BREADCRUMBS", False)
    )
    max_breadcrumbs: int = field(
        default_factory=lambda: _int_env("A11OPS_MAX_BREADCRUMBS", 100)
    )
    attach_breadcrumbs_to_alerts: bool = False
    # severity name → cooldown seconds; empty means nothing is suppressed
    rate_limits: dict[str, float] = field(
        default_factory=lambda: parse_rate_limits(os.environ.get("A11OPS_RATE_LIMITS"))
    )

    # --- Delivery ---
    queue_size: int = field(default_factory=lambda: _int_env("A11OPS_QUEUE_SIZE", 500))
    batch_size: int = field(default_factory=lambda: _int_env("A11OPS_BATCH_SIZE", 25))
    max_attempts: int = field(default_factory=lambda: _int_env("A11OPS_MAX_ATTEMPTS", 5))
    backoff_base: float = field(
        default_factory=lambda: _float_env("A11OPS_BACKOFF_BASE", 0.5)
    )
    backoff_max: float = field(
        default_factory=lambda: _float_env("A11OPS_BACKOFF_MAX", 30.0)
    )
    request_timeout: float = field(
        default_factory=lambda: _float_env("A11OPS_REQUEST_TIMEOUT", 10.0)
    )
    flush_interval: float = field(
        default_factory=lambda: _float_env("A11OPS_FLUSH_INTERVAL", 1.0)
    )
    shutdown_timeout: float = field(
        default_factory=lambda: _float_env("A11OPS_SHUTDOWN_TIMEOUT", 2.0)
    )

    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def __post_init__(self) -> None:
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(f"endpoint must be an http(s) URL, got {self.endpoint!r}")
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))
        for name in ("max_breadcrumbs", "queue_size", "batch_size", "max_attempts"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        for name in ("backoff_base", "backoff_max", "flush_interval", "shutdown_timeout"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        try:
            limits = {Severity.parse(k).label: float(v) for k, v in self.rate_limits.items()}
        except (TypeError, ValueError) as err:
            raise ConfigurationError(f"Bad rate_limits {self.rate_limits!r}: {err}") from err
        object.__setattr__(self, "rate_limits", limits)

    @classmethod
    def load(cls, path: Path | None = None, **overrides: Any) -> ClientConfig:
        """Build config from env vars, then the saved file, then defaults.

        Explicit keyword overrides beat everything.
        """
        file_values = read_config_file(path)
        kwargs: dict[str, Any] = {}
        for file_key, (name, env_var) in _FILE_KEYS.items():
            if file_key in file_values and env_var not in os.environ:
                kwargs.setdefault(name, file_values[file_key])
        kwargs.update(overrides)
        return cls(**kwargs)

    def replace(self, **changes: Any) -> ClientConfig:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return ClientConfig(**values)
