"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import time
from collections.abc import Callable

import pytest

from switchboard.verification import compute_signature

SIGNING_SECRET = "8f742231b10e8888abcd99yyyzzz85a5"


@pytest.fixture
def signing_secret() -> str:
    """Shared signing secret used by test receivers."""
    return SIGNING_SECRET


@pytest.fixture
def signed_headers(signing_secret: str) -> Callable[..., dict[str, str]]:
    """Build signed request headers for a body.

    Usage:
        headers = signed_headers(body, content_type="application/json")
    """

    def _build(
        body: bytes | str,
        *,
        content_type: str = "application/json",
        timestamp: int | None = None,
        secret: str | None = None,
    ) -> dict[str, str]:
        ts = int(time.time()) if timestamp is None else timestamp
        return {
            "content-type": content_type,
            "x-slack-request-timestamp": str(ts),
            "x-slack-signature": compute_signature(secret or signing_secret, ts, body),
        }

    return _build
