"""Request signature verification.

Requests are signed by the upstream platform with HMAC-SHA256 over the
base string ``"{version}:{timestamp}:{body}"`` using the shared signing
secret. The signature header carries ``"{version}={hex digest}"`` and the
timestamp header carries the signing time in epoch seconds.

Verification rejects a request when any of these holds, each check being
sufficient on its own:
- the signature or timestamp header is missing or malformed
- the timestamp is older than the freshness window (replay protection)
- the recomputed digest does not match (compared in constant time)
"""

from __future__ import annotations

import hashlib
import hmac
import time

from switchboard.exceptions import AuthenticityError
from switchboard.logging import get_logger

logger = get_logger(__name__)

DEFAULT_VERSION = "v0"
DEFAULT_FRESHNESS_WINDOW = 300


def compute_signature(
    signing_secret: str,
    timestamp: int | str,
    body: bytes | str,
    version: str = DEFAULT_VERSION,
) -> str:
    """Compute the request signature for a body.

    Args:
        signing_secret: Shared secret for HMAC.
        timestamp: Signing time in epoch seconds.
        body: Raw request body.
        version: Signature scheme version folded into the base string.

    Returns:
        Signature in format "<version>=<hex_digest>".
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    base = f"{version}:{timestamp}:".encode() + body
    digest = hmac.new(
        key=signing_secret.encode("utf-8"),
        msg=base,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{version}={digest}"


def verify_request(
    *,
    signing_secret: str,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    freshness_window: int = DEFAULT_FRESHNESS_WINDOW,
    now: float | None = None,
) -> None:
    """Verify that a request was signed with the shared secret and is fresh.

    Args:
        signing_secret: Shared secret for HMAC.
        body: Raw request body bytes, exactly as received.
        signature: Value of the signature header.
        timestamp: Value of the timestamp header.
        freshness_window: Maximum accepted age of the timestamp, in seconds.
        now: Current epoch time; defaults to ``time.time()``.

    Raises:
        AuthenticityError: If the request is stale, malformed or forged.
    """
    if not signature:
        raise AuthenticityError("Request signing verification failed. Missing signature.")
    if not timestamp:
        raise AuthenticityError("Request signing verification failed. Missing timestamp.")

    try:
        ts = int(timestamp.strip())
    except ValueError as e:
        raise AuthenticityError(
            "Request signing verification failed. Timestamp is not an integer."
        ) from e

    current = time.time() if now is None else now
    if ts < int(current) - freshness_window:
        logger.warning(
            "Rejected stale request",
            timestamp=ts,
            age_seconds=int(current) - ts,
            freshness_window=freshness_window,
        )
        raise AuthenticityError("Request signing verification failed. Timestamp is too old.")

    version, sep, received_hash = signature.partition("=")
    if not sep or not version or not received_hash:
        raise AuthenticityError("Request signing verification failed. Malformed signature.")

    expected = compute_signature(signing_secret, timestamp.strip(), body, version=version)
    _, _, expected_hash = expected.partition("=")

    if not hmac.compare_digest(expected_hash.encode(), received_hash.encode()):
        raise AuthenticityError("Request signing verification failed. Signature mismatch.")
