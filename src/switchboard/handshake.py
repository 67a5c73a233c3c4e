"""Protocol handshakes answered before any subscriber sees the request."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from starlette.responses import JSONResponse, Response

from switchboard.logging import get_logger

logger = get_logger(__name__)

SSL_CHECK_FIELD = "ssl_check"
URL_VERIFICATION_TYPE = "url_verification"


def intercept_handshake(body: Mapping[str, Any]) -> Response | None:
    """Answer liveness and ownership checks directly.

    Args:
        body: Normalized event body.

    Returns:
        The response to send, or None if the body is a regular event.
    """
    if body.get(SSL_CHECK_FIELD):
        logger.debug("Answered SSL check")
        return Response(status_code=200)

    if body.get("type") == URL_VERIFICATION_TYPE:
        logger.info("Answered URL verification challenge")
        return JSONResponse({"challenge": body.get("challenge")})

    return None
