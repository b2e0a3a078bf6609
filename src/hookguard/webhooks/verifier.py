"""Webhook Signature Verification.

Verifies the ``X-Hub-Signature-256`` HMAC-SHA256 signature of a webhook body
with constant-time comparison to prevent timing attacks.

Security Features:
- Fail-closed: every malformed, missing or erroring input rejects
- Constant-time comparison of the decoded signature bytes
- Empty bodies are always rejected, even with a correct signature
- Rejection reasons are only logged, never returned to the client

Usage:
    from hookguard.webhooks import WebhookVerifier

    verifier = WebhookVerifier(secret="my-webhook-secret")

    result = verifier.verify(
        body=request_body,
        signature_header=request.headers.get("X-Hub-Signature-256"),
    )
    if result:
        process(result.body.read())
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import io
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from hookguard.core.config import ConfigurationError

SIGNATURE_PREFIX = "sha256="
SIGNATURE_SIZE = hashlib.sha256().digest_size


class VerificationStatus(Enum):
    """Diagnostic status of webhook signature verification."""

    VALID = "valid"
    READ_ERROR = "read_error"
    EMPTY_BODY = "empty_body"
    MISSING_SIGNATURE = "missing_signature"
    INVALID_FORMAT = "invalid_format"
    INVALID_SIGNATURE = "invalid_signature"


@dataclass
class VerificationResult:
    """Result of webhook signature verification."""

    valid: bool
    """Whether the request may be forwarded."""

    status: VerificationStatus
    """Detailed verification status, for diagnostics only."""

    error: str | None = None
    """Error message if verification failed."""

    body: io.BytesIO | None = field(default=None, repr=False)
    """Fresh readable copy of the verified body, set only on accept."""

    expected: bytes | None = field(default=None, repr=False)
    """MAC computed for the body, set once the signature could be compared."""

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid


def validate_secret(secret: str | bytes | None) -> bytes:
    """Check the shared secret and return an immutable byte copy of it.

    Raises:
        ConfigurationError: If the secret is missing or empty.
    """
    if not secret:
        raise ConfigurationError("empty secret")
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return bytes(secret)


def compute_signature(payload: bytes, secret: bytes) -> bytes:
    """Compute the raw HMAC-SHA256 of a payload."""
    return hmac.new(secret, payload, hashlib.sha256).digest()


def sign_payload(payload: bytes, secret: str | bytes) -> str:
    """Return the ``sha256=<hex>`` header value a sender attaches to a payload."""
    return SIGNATURE_PREFIX + compute_signature(payload, validate_secret(secret)).hex()


def parse_signature_header(
    header_value: str | None,
    prefix: str = SIGNATURE_PREFIX,
) -> str | None:
    """Extract the hex signature from a header value.

    Returns None if the header is absent, lacks the prefix or is empty
    once the prefix is stripped.
    """
    if not header_value or not header_value.startswith(prefix):
        return None
    return header_value[len(prefix) :] or None


def decode_signature(signature: str) -> bytes | None:
    """Hex-decode a signature, returning None on invalid characters or odd length."""
    try:
        return binascii.unhexlify(signature)
    except ValueError:
        return None


def verify(
    body: bytes,
    signature_header: str | None,
    secret: bytes,
) -> VerificationResult:
    """Decide whether ``body`` carries a valid signature under ``secret``.

    Args:
        body: The complete raw request body.
        signature_header: Value of the signature header, or None if absent.
        secret: The validated shared secret.

    Returns:
        VerificationResult; on accept ``body`` holds a fresh stream of the bytes.
    """
    if not body:
        return VerificationResult(
            valid=False,
            status=VerificationStatus.EMPTY_BODY,
            error="Cannot validate an empty request body",
        )

    if not signature_header or signature_header == SIGNATURE_PREFIX:
        return VerificationResult(
            valid=False,
            status=VerificationStatus.MISSING_SIGNATURE,
            error="Missing signature header",
        )

    signature = parse_signature_header(signature_header)
    if signature is None:
        return VerificationResult(
            valid=False,
            status=VerificationStatus.INVALID_FORMAT,
            error=f"Signature header does not start with {SIGNATURE_PREFIX!r}",
        )

    claimed = decode_signature(signature)
    if claimed is None:
        return VerificationResult(
            valid=False,
            status=VerificationStatus.INVALID_FORMAT,
            error="Signature is not valid hex",
        )
    if len(claimed) != SIGNATURE_SIZE:
        return VerificationResult(
            valid=False,
            status=VerificationStatus.INVALID_FORMAT,
            error=f"Signature must be {SIGNATURE_SIZE} bytes, got {len(claimed)}",
        )

    expected = compute_signature(body, secret)

    if not hmac.compare_digest(expected, claimed):
        return VerificationResult(
            valid=False,
            status=VerificationStatus.INVALID_SIGNATURE,
            error="Signature mismatch",
            expected=expected,
        )

    return VerificationResult(
        valid=True,
        status=VerificationStatus.VALID,
        body=io.BytesIO(body),
        expected=expected,
    )


class WebhookVerifier:
    """HMAC-SHA256 webhook verifier bound to one shared secret.

    Holds two long-lived values injected at construction: the immutable
    secret and a diagnostic logger. Nothing is mutated per request, so one
    instance can serve concurrent requests.
    """

    def __init__(
        self,
        secret: str | bytes | None,
        logger: Any | None = None,
    ) -> None:
        """Initialize the webhook verifier.

        Args:
            secret: The shared secret for HMAC computation.
            logger: structlog logger for rejection diagnostics.

        Raises:
            ConfigurationError: If the secret is missing or empty.
        """
        self._secret = validate_secret(secret)
        self._logger = logger if logger is not None else structlog.get_logger()

    @classmethod
    def from_config(cls, config: Any, logger: Any | None = None) -> WebhookVerifier:
        """Create a verifier from an object with a ``secret`` attribute."""
        return cls(getattr(config, "secret", None), logger=logger)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(secret=<{len(self._secret)} bytes>)"

    def verify(
        self,
        body: bytes,
        signature_header: str | None,
        remote: str | None = None,
    ) -> VerificationResult:
        """Verify a buffered body and log the reason of any rejection."""
        result = verify(body, signature_header, self._secret)
        self._log_result(result, signature_header, body, remote)
        return result

    async def verify_stream(
        self,
        read: Callable[[], Awaitable[bytes]],
        signature_header: str | None,
        remote: str | None = None,
        read_errors: tuple[type[BaseException], ...] = (OSError,),
    ) -> VerificationResult:
        """Read the whole body with ``read`` and verify it.

        Failures raised by ``read`` that match ``read_errors`` reject with
        READ_ERROR. Cancellation is never caught.
        """
        try:
            body = await read()
        except read_errors as e:
            self._logger.error("Reading request body failed", error=str(e), remote=remote)
            return VerificationResult(
                valid=False,
                status=VerificationStatus.READ_ERROR,
                error=f"Reading request body failed: {e}",
            )
        return self.verify(body, signature_header, remote=remote)

    def _log_result(
        self,
        result: VerificationResult,
        signature_header: str | None,
        body: bytes,
        remote: str | None,
    ) -> None:
        if result.valid:
            self._logger.debug("Successful webhook invocation", remote=remote, size=len(body))
            return

        if result.status is VerificationStatus.INVALID_SIGNATURE and result.expected:
            self._logger.debug(
                "Signature mismatch",
                expected=result.expected.hex(),
                received=signature_header,
                remote=remote,
            )
        else:
            self._logger.debug(
                "Rejected webhook",
                status=result.status.value,
                reason=result.error,
                remote=remote,
            )
