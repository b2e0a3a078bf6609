"""Tests for the gateway server and upstream forwarding."""

from __future__ import annotations

import inspect

import httpx
import pytest
from aiohttp.test_utils import TestClient, TestServer

from hookguard.core.config import ConfigurationError, GatewayConfig
from hookguard.server.gateway import (
    GatewayServer,
    UpstreamForwarder,
    acknowledge,
    filter_headers,
)
from hookguard.webhooks.verifier import WebhookVerifier, sign_payload

HEADER = "X-Hub-Signature-256"


class RecordingUpstream:
    """httpx transport handler standing in for the upstream service."""

    def __init__(self, status: int = 200, body: bytes = b"ok", headers=None) -> None:
        self.requests: list[httpx.Request] = []
        self._status = status
        self._body = body
        self._headers = headers or {"Content-Type": "text/plain"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self._status, content=self._body, headers=self._headers)


def make_forwarder(handler) -> UpstreamForwarder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstreamForwarder("http://upstream.test/base/", client=client)


class TestGatewaySetup:
    """Tests for setup-time validation."""

    def test_empty_secret_fails_before_serving(self):
        """Test a gateway without a secret can't be created."""
        with pytest.raises(ConfigurationError, match="empty secret"):
            GatewayServer(GatewayConfig(secret=""))

    def test_default_handler_acknowledges(self):
        server = GatewayServer(GatewayConfig(secret="blah"))
        assert server._handler is acknowledge

    def test_upstream_url_selects_forwarder(self):
        server = GatewayServer(
            GatewayConfig(secret="blah", upstream_url="http://localhost:9000")
        )
        assert isinstance(server._forwarder, UpstreamForwarder)
        assert server._forwarder.upstream_url == "http://localhost:9000"
        assert server._handler == server._forwarder.forward

    def test_route_handlers_are_coroutine_functions(self):
        """Test the route handler is registered as an async callable."""
        for upstream_url in (None, "http://localhost:9000"):
            server = GatewayServer(GatewayConfig(secret="blah", upstream_url=upstream_url))
            assert inspect.iscoroutinefunction(server._handler)

    def test_explicit_verifier_used(self):
        verifier = WebhookVerifier(secret="other")
        server = GatewayServer(GatewayConfig(secret="blah"), verifier=verifier)
        assert server.verifier is verifier

    @pytest.mark.asyncio
    async def test_acknowledge_without_upstream(self):
        """Test verified requests get 202 when no upstream is configured."""
        app = GatewayServer(GatewayConfig(secret="blah")).build_app()
        body = b"payload"

        async with TestClient(TestServer(app)) as client:
            resp = await client.post(
                "/", data=body, headers={HEADER: sign_payload(body, "blah")}
            )
            text = await resp.text()

        assert resp.status == 202
        assert text == "accepted"


class TestUpstreamForwarder:
    """Tests for forwarding verified requests upstream."""

    @pytest.mark.asyncio
    async def test_forwards_verified_request(self):
        """Test method, path, query, headers and body reach the upstream."""
        upstream = RecordingUpstream(status=201, body=b"created")
        forwarder = make_forwarder(upstream)
        server = GatewayServer(GatewayConfig(secret="blah"), handler=forwarder.forward)
        body = b'{"ref": "refs/heads/main"}'

        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post(
                "/events?delivery=42",
                data=body,
                headers={
                    HEADER: sign_payload(body, "blah"),
                    "X-GitHub-Event": "push",
                    "Content-Type": "application/json",
                },
            )
            text = await resp.text()

        assert resp.status == 201
        assert text == "created"
        assert len(upstream.requests) == 1

        forwarded = upstream.requests[0]
        assert forwarded.method == "POST"
        assert str(forwarded.url) == "http://upstream.test/base/events?delivery=42"
        assert forwarded.content == body
        assert forwarded.headers["X-GitHub-Event"] == "push"
        assert forwarded.headers[HEADER] == sign_payload(body, "blah")
        assert "X-Forwarded-For" in forwarded.headers

    @pytest.mark.asyncio
    async def test_forged_request_never_forwarded(self):
        upstream = RecordingUpstream()
        forwarder = make_forwarder(upstream)
        server = GatewayServer(GatewayConfig(secret="blah"), handler=forwarder.forward)
        body = b"payload"

        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post(
                "/", data=body, headers={HEADER: sign_payload(body, "wrong")}
            )

        assert resp.status == 403
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_upstream_connection_error(self):
        """Test an unreachable upstream yields 502."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        forwarder = make_forwarder(refuse)
        server = GatewayServer(GatewayConfig(secret="blah"), handler=forwarder.forward)
        body = b"payload"

        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post(
                "/", data=body, headers={HEADER: sign_payload(body, "blah")}
            )
            text = await resp.text()

        assert resp.status == 502
        assert text == "upstream unavailable"

    @pytest.mark.asyncio
    async def test_upstream_timeout(self):
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        forwarder = make_forwarder(slow)
        server = GatewayServer(GatewayConfig(secret="blah"), handler=forwarder.forward)
        body = b"payload"

        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post(
                "/", data=body, headers={HEADER: sign_payload(body, "blah")}
            )

        assert resp.status == 502

    @pytest.mark.asyncio
    async def test_start_stop_owned_client(self):
        forwarder = UpstreamForwarder("http://upstream.test")
        await forwarder.start()
        assert forwarder._client is not None
        await forwarder.stop()
        assert forwarder._client is None

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(RecordingUpstream()))
        forwarder = UpstreamForwarder("http://upstream.test", client=client)
        await forwarder.stop()
        assert client.is_closed is False
        await client.aclose()


class TestFilterHeaders:
    """Tests for hop-by-hop header filtering."""

    def test_drops_hop_by_hop(self):
        headers = {
            "Connection": "keep-alive",
            "Transfer-Encoding": "chunked",
            "Host": "gateway.example",
            "Content-Length": "7",
            "X-GitHub-Delivery": "abc",
        }
        assert filter_headers(headers) == {"X-GitHub-Delivery": "abc"}

    def test_custom_drop(self):
        headers = {"Content-Encoding": "gzip", "Host": "upstream"}
        assert filter_headers(headers, drop=("content-encoding",)) == {"Host": "upstream"}


class TestGatewayLifecycle:
    """Tests for starting and stopping the server."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, unused_tcp_port):
        server = GatewayServer(
            GatewayConfig(secret="blah", bind=f"127.0.0.1:{unused_tcp_port}")
        )
        await server.start()
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(f"http://127.0.0.1:{unused_tcp_port}/healthz")
            assert resp.status_code == 200
        finally:
            await server.stop()
