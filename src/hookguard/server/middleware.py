"""aiohttp middleware that gates requests on their webhook signature.

The middleware buffers the body, hands it to a WebhookVerifier and either
short-circuits with a uniform 403 or forwards the request to the next
handler with its body stream rehydrated.

Example:
    verifier = WebhookVerifier(secret="s3cr3t")
    app = web.Application(middlewares=[create_signature_middleware(verifier)])
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection

from aiohttp import web
from aiohttp.http_exceptions import HttpProcessingError
from aiohttp.streams import StreamReader

from hookguard.core.config import DEFAULT_SIGNATURE_HEADER
from hookguard.webhooks.verifier import WebhookVerifier

REJECTION_STATUS = 403
REJECTION_TEXT = "invalid signature"

# Anything the body read can raise when the client aborts, sends a broken
# payload or exceeds client_max_size.
BODY_READ_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    HttpProcessingError,
    web.HTTPRequestEntityTooLarge,
)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def rejection_response() -> web.Response:
    """Build the single response returned for every verification failure."""
    return web.Response(
        text=REJECTION_TEXT,
        status=REJECTION_STATUS,
        content_type="text/plain",
    )


def rehydrate_body(request: web.Request, body: bytes) -> web.Request:
    """Replace the consumed body stream of ``request`` with a fresh one.

    The next reader sees exactly ``body`` from the start, once, through
    ``request.read()``, ``request.text()`` or ``request.content``.
    """
    # limit above the body size keeps feed_data from pausing the transport
    reader = StreamReader(
        request.protocol,
        max(len(body), 2**16),
        loop=asyncio.get_running_loop(),
    )
    reader.feed_data(body)
    reader.feed_eof()
    request._payload = reader
    request._read_bytes = None
    return request


def create_signature_middleware(
    verifier: WebhookVerifier,
    signature_header: str = DEFAULT_SIGNATURE_HEADER,
    exempt_paths: Collection[str] = (),
) -> Callable[[web.Request, Handler], Awaitable[web.StreamResponse]]:
    """Create a middleware bound to an already validated verifier.

    Args:
        verifier: Verifier holding the shared secret.
        signature_header: Header carrying the ``sha256=<hex>`` signature.
        exempt_paths: Exact paths whose GET/HEAD requests skip verification.
    """
    exempt = frozenset(exempt_paths)

    @web.middleware
    async def signature_middleware(
        request: web.Request, handler: Handler
    ) -> web.StreamResponse:
        if request.method in ("GET", "HEAD") and request.path in exempt:
            return await handler(request)

        result = await verifier.verify_stream(
            request.read,
            request.headers.get(signature_header),
            remote=request.remote,
            read_errors=BODY_READ_ERRORS,
        )
        if not result.valid or result.body is None:
            return rejection_response()

        return await handler(rehydrate_body(request, result.body.getvalue()))

    return signature_middleware
