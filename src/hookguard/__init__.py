"""Hookguard - verify webhook signatures before they reach your app."""

from hookguard.core.config import ConfigurationError, GatewayConfig
from hookguard.webhooks.verifier import (
    VerificationResult,
    VerificationStatus,
    WebhookVerifier,
    sign_payload,
    verify,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigurationError",
    "GatewayConfig",
    "VerificationResult",
    "VerificationStatus",
    "WebhookVerifier",
    "sign_payload",
    "verify",
]
