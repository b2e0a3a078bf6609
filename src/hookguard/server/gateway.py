"""Webhook gateway server.

Runs an aiohttp application whose every request (except the health check)
passes the signature middleware before reaching the next stage: either a
caller-supplied handler, the upstream forwarder, or a plain 202 acknowledgement.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping

import httpx
import structlog
from aiohttp import web

from hookguard.core.config import GatewayConfig
from hookguard.server.middleware import Handler, create_signature_middleware
from hookguard.webhooks.verifier import WebhookVerifier

logger = structlog.get_logger()

HEALTH_PATH = "/healthz"

HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)


def filter_headers(
    headers: Mapping[str, str],
    drop: Collection[str] = ("host", "content-length"),
) -> dict[str, str]:
    """Drop hop-by-hop headers, plus any in ``drop``, before relaying."""
    result: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if key_lower in HOP_BY_HOP or key_lower in drop:
            continue
        result[key] = value
    return result


class UpstreamForwarder:
    """Forward verified requests to an upstream HTTP service with httpx."""

    def __init__(
        self,
        upstream_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.upstream_url = upstream_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            # Redirects go back to the sender untouched
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=False,
            )

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def forward(self, request: web.Request) -> web.Response:
        """Relay one verified request and return the upstream response."""
        if self._client is None:
            await self.start()
        client = self._client

        body = await request.read()
        headers = filter_headers(request.headers)
        headers["X-Forwarded-For"] = request.remote or ""
        headers["X-Forwarded-Host"] = request.host

        url = f"{self.upstream_url}{request.rel_url}"
        try:
            resp = await client.request(
                request.method,
                url,
                headers=headers,
                content=body,
            )
        except httpx.TimeoutException as e:
            logger.warning("Upstream timeout", url=url, error=str(e))
            return web.Response(text="upstream unavailable", status=502)
        except httpx.RequestError as e:
            logger.error("Upstream request failed", url=url, error=str(e))
            return web.Response(text="upstream unavailable", status=502)

        logger.debug("Forwarded webhook", url=url, status=resp.status_code)
        return web.Response(
            body=resp.content,
            status=resp.status_code,
            # httpx already decoded the body
            headers=filter_headers(
                resp.headers, drop=("content-length", "content-encoding")
            ),
        )


async def acknowledge(request: web.Request) -> web.Response:
    """Default next stage when no upstream is configured."""
    await request.read()
    return web.Response(text="accepted", status=202)


async def health_check(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy"})


class GatewayServer:
    """Webhook gateway with signature verification in front of a handler.

    The verifier is built (and the secret validated) in the constructor, so a
    gateway with an empty secret never exists and never serves traffic.
    """

    def __init__(
        self,
        config: GatewayConfig,
        handler: Handler | None = None,
        verifier: WebhookVerifier | None = None,
    ) -> None:
        self.config = config
        self.verifier = verifier or WebhookVerifier.from_config(config)
        self._forwarder: UpstreamForwarder | None = None
        if handler is None and config.upstream_url:
            self._forwarder = UpstreamForwarder(
                config.upstream_url,
                timeout=config.upstream_timeout,
            )
            handler = self._forwarder.forward
        self._handler: Handler = handler or acknowledge
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        """Build the aiohttp application with the signature middleware installed."""
        app = web.Application(
            client_max_size=self.config.max_body_size,
            middlewares=[
                create_signature_middleware(
                    self.verifier,
                    signature_header=self.config.signature_header,
                    exempt_paths=(HEALTH_PATH,),
                )
            ],
        )
        app.router.add_get(HEALTH_PATH, health_check)
        app.router.add_route("*", self.config.path, self._handler)
        if self._forwarder is not None:
            app.on_startup.append(self._start_forwarder)
            app.on_cleanup.append(self._stop_forwarder)
        return app

    async def _start_forwarder(self, app: web.Application) -> None:
        if self._forwarder is not None:
            await self._forwarder.start()

    async def _stop_forwarder(self, app: web.Application) -> None:
        if self._forwarder is not None:
            await self._forwarder.stop()

    async def start(self) -> None:
        """Start listening on the configured bind address."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        host, port = self.config.parse_bind()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info(
            "Webhook gateway started",
            host=host,
            port=port,
            upstream=self.config.upstream_url,
            signature_header=self.config.signature_header,
        )

    async def stop(self) -> None:
        """Stop the gateway gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Webhook gateway stopped")
