"""Out-of-band responses to an event's response URL.

Some events (slash commands, interactive actions) carry a ``response_url``
that accepts follow-up messages after the synchronous acknowledgment.
Each ``respond()`` call is an independent fire-and-forget delivery: it
schedules a background task and returns immediately. Failures are reported
through the error callback, never raised at the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder

from switchboard.ack import running_loop
from switchboard.exceptions import OutOfBandDeliveryError
from switchboard.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RESPOND_TIMEOUT_SECONDS = 10.0


def build_request_kwargs(response: Any) -> dict[str, Any]:
    """Build httpx request arguments for a response value.

    Text is posted verbatim; anything else is posted as JSON.
    """
    if isinstance(response, str):
        return {
            "content": response.encode("utf-8"),
            "headers": {"Content-Type": "text/plain; charset=utf-8"},
        }
    return {"json": jsonable_encoder(response)}


class OutOfBandResponder:
    """Fire-and-forget delivery to a single callback URL.

    Example:
        ```python
        responder = OutOfBandResponder(body["response_url"], on_error=emit_error)
        responder.respond({"text": "Done!"})
        ```
    """

    def __init__(
        self,
        url: str,
        *,
        on_error: Callable[[OutOfBandDeliveryError], None],
        timeout_seconds: float = DEFAULT_RESPOND_TIMEOUT_SECONDS,
        event_id: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the responder.

        Args:
            url: Callback target.
            on_error: Called with an OutOfBandDeliveryError for each failed delivery.
            timeout_seconds: HTTP request timeout.
            event_id: ID of the originating event, for logs.
            loop: Event loop deliveries run on. Defaults to the running loop.
        """
        self._url = url
        self._on_error = on_error
        self._timeout = timeout_seconds
        self._event_id = event_id
        self._loop = loop or asyncio.get_running_loop()
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._tasks)

    def respond(self, response: Any) -> None:
        """Schedule a delivery of ``response`` to the callback URL.

        Safe to call from the event loop or from a worker thread.
        """
        if self._closed:
            logger.warning(
                "Out-of-band response dropped after shutdown",
                event_id=self._event_id,
                url=self._url,
            )
            return

        if running_loop() is self._loop:
            self._spawn(response)
        else:
            self._loop.call_soon_threadsafe(self._spawn, response)

    async def aclose(self) -> None:
        """Cancel in-flight deliveries and refuse new ones."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, response: Any) -> None:
        task = self._loop.create_task(self._deliver(response))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, response: Any) -> None:
        try:
            kwargs = build_request_kwargs(response)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                http_response = await client.post(self._url, **kwargs)
        except httpx.InvalidURL as e:
            self._fail(f"invalid response URL: {e}")
            return
        except httpx.HTTPError as e:
            self._fail(str(e) or type(e).__name__)
            return
        except (TypeError, ValueError) as e:
            self._fail(f"response is not serializable: {e}")
            return

        if not 200 <= http_response.status_code < 300:
            self._fail(f"HTTP {http_response.status_code}", http_response.status_code)
            return

        logger.debug(
            "Out-of-band response delivered",
            event_id=self._event_id,
            url=self._url,
            status_code=http_response.status_code,
        )

    def _fail(self, reason: str, status_code: int | None = None) -> None:
        logger.warning(
            "Out-of-band delivery failed",
            event_id=self._event_id,
            url=self._url,
            reason=reason,
        )
        self._on_error(OutOfBandDeliveryError(self._url, reason, status_code=status_code))
