"""Tests for the HTTP transport, response classification, and health check.

Uses httpx.MockTransport so no network is touched.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import FakeTransport, make_config, raise_and_catch
from a11ops.breadcrumbs import BreadcrumbTrail
from a11ops.builder import EventBuilder
from a11ops.errors import ConfigurationError
from a11ops.scope import ContextStore
from a11ops.transport import (
    USER_AGENT,
    HttpTransport,
    Outcome,
    Transport,
    TransportResponse,
    check_health,
    classify,
    encode_batch,
)


def _events(count: int = 2):
    config = make_config()
    scope = ContextStore()
    scope.set_user({"id": "user-1"})
    builder = EventBuilder(config, scope, BreadcrumbTrail(10))
    events = [builder.build_from_message(f"message {i}") for i in range(count - 1)]
    events.append(builder.build_from_error(raise_and_catch(ValueError("bad input"))))
    return events


class TestClassify:
    @pytest.mark.parametrize("status", [200, 201, 202, 204])
    def test_success(self, status):
        assert classify(status) is Outcome.DELIVERED

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 408, 429, None])
    def test_retryable(self, status):
        assert classify(status) is Outcome.RETRY

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 413, 422])
    def test_terminal(self, status):
        assert classify(status) is Outcome.TERMINAL

    def test_response_outcome(self):
        assert TransportResponse(status_code=None, error="boom").outcome is Outcome.RETRY


class TestEncoding:
    def test_batch_envelope(self):
        events = _events(2)
        body = json.loads(encode_batch(events))
        assert list(body) == ["events"]
        assert [e["event_id"] for e in body["events"]] == [e.event_id for e in events]

    def test_payload_shape(self):
        _, error_event = _events(2)
        payload = json.loads(encode_batch([error_event]))["events"][0]
        assert payload["severity"] == "error"
        assert payload["category"] == "error"
        assert payload["user"] == {"id": "user-1"}
        assert payload["exception"]["type"] == "ValueError"
        assert payload["exception"]["stacktrace"]
        assert payload["sdk"]["name"] == "a11ops-python"
        assert payload["environment"] == "test"

    def test_user_omitted_when_unset(self):
        builder = EventBuilder(make_config(), ContextStore(), BreadcrumbTrail(10))
        payload = builder.build_from_message("hi").to_payload()
        assert "user" not in payload
        assert "exception" not in payload


class TestHttpTransport:
    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError, match="A11OPS_API_KEY"):
            HttpTransport(None, "https://collector.test")

    def test_url_includes_key(self):
        transport = HttpTransport("test-key", "https://collector.test/")
        assert transport.url == "https://collector.test/alerts/test-key"

    def test_posts_batch(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202, json={"accepted": 2})

        transport = HttpTransport(
            "test-key", "https://collector.test", http_transport=httpx.MockTransport(handler)
        )
        events = _events(2)

        async def scenario():
            response = await transport.send(events)
            await transport.aclose()
            return response

        response = asyncio.run(scenario())

        assert response.status_code == 202
        assert response.outcome is Outcome.DELIVERED
        (request,) = requests
        assert request.method == "POST"
        assert str(request.url) == "https://collector.test/alerts/test-key"
        assert request.headers["user-agent"] == USER_AGENT
        assert request.headers["content-type"] == "application/json"
        assert len(json.loads(request.content)["events"]) == 2

    def test_error_status_passed_through(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="invalid api key")

        transport = HttpTransport(
            "bad-key", "https://collector.test", http_transport=httpx.MockTransport(handler)
        )
        response = asyncio.run(transport.send(_events(1)))
        assert response.status_code == 401
        assert response.body == "invalid api key"
        assert response.outcome is Outcome.TERMINAL

    def test_network_error_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = HttpTransport(
            "test-key", "https://collector.test", http_transport=httpx.MockTransport(handler)
        )
        response = asyncio.run(transport.send(_events(1)))
        assert response.status_code is None
        assert "ConnectError" in response.error
        assert response.outcome is Outcome.RETRY

    def test_client_recreated_per_event_loop(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        transport = HttpTransport(
            "test-key", "https://collector.test", http_transport=httpx.MockTransport(handler)
        )
        events = _events(1)
        assert asyncio.run(transport.send(events)).status_code == 200
        assert asyncio.run(transport.send(events)).status_code == 200

    def test_previous_loop_client_closed_on_recreation(self):
        transport = HttpTransport(
            "test-key",
            "https://collector.test",
            http_transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        events = _events(1)
        asyncio.run(transport.send(events))
        first = transport._client
        assert first is not None and not first.is_closed

        asyncio.run(transport.send(events))
        assert first.is_closed
        assert transport._client is not first

    def test_aclose_from_another_loop_closes_client(self):
        transport = HttpTransport(
            "test-key",
            "https://collector.test",
            http_transport=httpx.MockTransport(lambda request: httpx.Response(200)),
        )
        asyncio.run(transport.send(_events(1)))
        first = transport._client
        asyncio.run(transport.aclose())
        assert first.is_closed
        assert transport._client is None

    def test_satisfies_protocol(self):
        assert isinstance(HttpTransport("k", "https://collector.test"), Transport)
        assert isinstance(FakeTransport(), Transport)


class TestHealthCheck:
    def test_healthy(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "ok"})

        status = asyncio.run(
            check_health("https://collector.test/", http_transport=httpx.MockTransport(handler))
        )
        assert status == {"status": "ok"}

    def test_plain_text_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="ok")

        status = asyncio.run(
            check_health("https://collector.test", http_transport=httpx.MockTransport(handler))
        )
        assert status == {"status": "ok"}

    def test_unhealthy_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(
                check_health("https://collector.test", http_transport=httpx.MockTransport(handler))
            )
