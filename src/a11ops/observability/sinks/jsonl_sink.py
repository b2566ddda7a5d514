"""Append-only JSON Lines file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


class JsonlSink:
    """Opens the file per record, so several processes can share one path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, default=str))
            fh.write("\n")
