"""Turn SDK errors into a one-line stderr message and a non-zero exit."""

from __future__ import annotations

import functools
from typing import Any, Callable

import typer

from a11ops.errors import A11opsError


def handle_error(msg: str, code: int = 1) -> None:
    typer.echo(f"Error: {msg}", err=True)
    raise typer.Exit(code)


def friendly_errors(f: Callable) -> Callable:
    """Wrap a command so an A11opsError exits 1 instead of printing a traceback."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except A11opsError as exc:
            handle_error(str(exc))

    return wrapper
