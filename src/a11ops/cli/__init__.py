"""a11ops CLI -- typer-based command interface.

Commands:
    a11ops send TITLE [MESSAGE]    Send one alert and wait for delivery
    a11ops ping                    Check the collector's /health endpoint
    a11ops config                  Show the resolved configuration
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import typer

from a11ops.cli._errors import friendly_errors, handle_error
from a11ops.client import A11ops
from a11ops.config import ClientConfig
from a11ops.models import DeliveryReceipt
from a11ops.severity import Severity
from a11ops.transport import check_health

app = typer.Typer(
    name="a11ops",
    help="Send alerts to a11ops and check connectivity.",
    no_args_is_help=True,
)


def _make_client(config: ClientConfig) -> A11ops:
    return A11ops(config=config)


def _parse_fields(pairs: list[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            handle_error(f"--field expects key=value, got {pair!r}")
        fields[key] = value
    return fields


async def _send(client: A11ops, request: dict[str, Any]) -> DeliveryReceipt:
    async with client:
        return await client.alert(request)


@app.command()
@friendly_errors
def send(
    title: str = typer.Argument(..., help="Alert title."),
    message: str = typer.Argument("", help="Alert message."),
    priority: str = typer.Option("info", "--priority", "-p", help="debug|info|warning|error|critical"),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace to file the alert under."),
    field: list[str] = typer.Option([], "--field", "-f", help="Extra key=value field (repeatable)."),
) -> None:
    """Send one alert and wait until it is delivered or dropped."""
    severity = Severity.parse(priority)
    request: dict[str, Any] = {"title": title, "message": message, "priority": severity}
    if workspace:
        request["workspace"] = workspace
    request.update(_parse_fields(field))

    client = _make_client(ClientConfig.load())
    receipt = asyncio.run(_send(client, request))
    if not receipt.delivered:
        handle_error(f"alert {receipt.event_id} was not delivered ({receipt.reason or receipt.state.value})")
    typer.echo(f"Alert sent: {receipt.event_id} [{severity.label}]")


@app.command()
def ping(
    endpoint: str = typer.Option(None, "--endpoint", "-e", help="Collector URL (default: A11OPS_API_URL)."),
    timeout: float = typer.Option(5.0, help="Seconds to wait for a response."),
) -> None:
    """Check that the collector is reachable."""
    url = endpoint or ClientConfig.load().endpoint
    try:
        status = asyncio.run(check_health(url, timeout))
    except httpx.HTTPStatusError as exc:
        handle_error(f"{url}/health answered {exc.response.status_code}")
    except httpx.HTTPError as exc:
        handle_error(
            f"Could not reach {url}: {type(exc).__name__}.\n"
            f"\n"
            f"If you run a local collector, point the SDK at it with:\n"
            f"  export A11OPS_API_URL=http://localhost:8787"
        )
    typer.echo(f"OK {url}: {status}")


@app.command("config")
@friendly_errors
def show_config() -> None:
    """Show the resolved configuration (API key masked)."""
    cfg = ClientConfig.load()
    key = cfg.api_key
    masked = f"{key[:4]}…{key[-2:]}" if key and len(key) > 8 else ("set" if key else "not set")
    typer.echo(f"api_key:      {masked}")
    typer.echo(f"endpoint:     {cfg.endpoint}")
    typer.echo(f"environment:  {cfg.environment}")
    typer.echo(f"release:      {cfg.release or '-'}")
    typer.echo(f"queue_size:   {cfg.queue_size}")
    typer.echo(f"batch_size:   {cfg.batch_size}")
    typer.echo(f"max_attempts: {cfg.max_attempts}")


def main() -> None:
    """Entry point for the a11ops CLI."""
    app()
