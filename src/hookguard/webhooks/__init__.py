"""Hookguard Webhook Verification Module.

Verifies GitHub-style ``X-Hub-Signature-256`` webhook signatures
(HMAC-SHA256, ``sha256=<hex>``) with constant-time comparison.

Usage:
    from hookguard.webhooks import WebhookVerifier

    verifier = WebhookVerifier(secret="your-webhook-secret")
    result = verifier.verify(body, headers.get("X-Hub-Signature-256"))

    if result.valid:
        payload = result.body.read()
"""

from hookguard.webhooks.verifier import (
    SIGNATURE_PREFIX,
    SIGNATURE_SIZE,
    VerificationResult,
    VerificationStatus,
    WebhookVerifier,
    compute_signature,
    decode_signature,
    parse_signature_header,
    sign_payload,
    validate_secret,
    verify,
)

__all__ = [
    "SIGNATURE_PREFIX",
    "SIGNATURE_SIZE",
    "VerificationResult",
    "VerificationStatus",
    "WebhookVerifier",
    "compute_signature",
    "decode_signature",
    "parse_signature_header",
    "sign_payload",
    "validate_secret",
    "verify",
]
