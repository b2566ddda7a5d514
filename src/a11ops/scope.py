"""Context Store: who the current user is and named context buckets.

Mutations are synchronous and never suspend, so they are atomic with
respect to the delivery pipeline on a single event loop. Reads hand out
deep copies so an already-built Event never changes underneath the caller.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


class ContextStore:
    """Process-wide mutable state owned by one client."""

    def __init__(self) -> None:
        self._user: dict[str, Any] | None = None
        self._contexts: dict[str, Any] = {}

    @property
    def user(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._user)

    def set_user(self, user: Mapping[str, Any] | None) -> None:
        """Replace the current user wholesale. None or {} clears it."""
        if user is None:
            self._user = None
            return
        if not isinstance(user, Mapping):
            raise TypeError(f"user must be a mapping or None, got {type(user).__name__}")
        self._user = copy.deepcopy(dict(user)) or None

    def set_context(self, name: str, value: Any) -> None:
        """Upsert a named bucket. Last write wins; None removes the bucket."""
        if not isinstance(name, str) or not name:
            raise ValueError("context name must be a non-empty string")
        if value is None:
            self._contexts.pop(name, None)
            return
        self._contexts[name] = copy.deepcopy(value)

    def get_context(self, name: str) -> Any:
        return copy.deepcopy(self._contexts.get(name))

    def snapshot(self) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """Deep copies of (user, contexts) for inclusion in an Event."""
        return copy.deepcopy(self._user), copy.deepcopy(self._contexts)

    def clear(self) -> None:
        self._user = None
        self._contexts = {}
