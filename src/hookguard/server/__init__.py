"""HTTP binding for the webhook verifier (aiohttp)."""

from hookguard.server.gateway import GatewayServer, UpstreamForwarder
from hookguard.server.middleware import (
    REJECTION_STATUS,
    REJECTION_TEXT,
    create_signature_middleware,
    rehydrate_body,
    rejection_response,
)

__all__ = [
    "GatewayServer",
    "UpstreamForwarder",
    "REJECTION_STATUS",
    "REJECTION_TEXT",
    "create_signature_middleware",
    "rehydrate_body",
    "rejection_response",
]
