"""Acknowledgment gate: one-shot, deadline-bound acknowledgment per event.

Every accepted event gets an AckToken. The token owns the transport
response sink: whichever of ``ack()`` or the deadline timer wins the
Idle -> terminal transition writes the one and only HTTP response.

State machine:

    IDLE --ack() before deadline--> ACKNOWLEDGED   (response written)
    IDLE --deadline elapses-------> TIMED_OUT      (500 written, AckTimeoutError emitted)
    IDLE --cancel() on shutdown---> CANCELLED      (503 written, nothing emitted)

Any call on a terminal token is a no-op. The transition is guarded by a
lock so handlers running in worker threads can race the timer safely.
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi.encoders import jsonable_encoder
from starlette.responses import Response

from switchboard.exceptions import AckTimeoutError
from switchboard.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ACK_TIMEOUT_SECONDS = 2.8


class AckState(str, Enum):
    """Lifecycle state of an AckToken."""

    IDLE = "idle"
    ACKNOWLEDGED = "acknowledged"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AckOutcome:
    """Terminal result written to the transport for one event."""

    state: AckState
    status_code: int = 200
    content: bytes = b""
    media_type: str | None = None

    def to_response(self) -> Response:
        return Response(
            content=self.content,
            status_code=self.status_code,
            media_type=self.media_type,
        )


def render_ack_response(response: Any) -> AckOutcome:
    """Render an acknowledgment value into the HTTP response body.

    ``None`` gives an empty body, text is sent as-is, and anything else is
    serialized as JSON.

    Raises:
        TypeError, ValueError: If the value cannot be serialized.
    """
    if response is None:
        return AckOutcome(AckState.ACKNOWLEDGED)
    if isinstance(response, str):
        return AckOutcome(
            AckState.ACKNOWLEDGED,
            content=response.encode("utf-8"),
            media_type="text/plain",
        )
    if isinstance(response, bytes):
        return AckOutcome(AckState.ACKNOWLEDGED, content=response)

    # Same encoding as starlette's JSONResponse
    content = json.dumps(
        jsonable_encoder(response),
        ensure_ascii=False,
        allow_nan=False,
        indent=None,
        separators=(",", ":"),
    ).encode("utf-8")
    return AckOutcome(AckState.ACKNOWLEDGED, content=content, media_type="application/json")


def running_loop() -> asyncio.AbstractEventLoop | None:
    """Return the event loop running in this thread, if any."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AckToken:
    """One-shot acknowledgment bound to a deadline.

    Must be created on the event loop that serves the request; ``ack()``
    and ``cancel()`` may then be called from any thread.

    Example:
        ```python
        token = AckToken(2.8, on_timeout=emit_error, event_id=event.id)
        emit(ReceiverEvent(event=event, ack_token=token))
        outcome = await token.wait()
        return outcome.to_response()
        ```
    """

    def __init__(
        self,
        deadline: float = DEFAULT_ACK_TIMEOUT_SECONDS,
        *,
        on_timeout: Callable[[AckTimeoutError], None] | None = None,
        event_id: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the token and arm its deadline timer.

        Args:
            deadline: Seconds before the token times out.
            on_timeout: Called with an AckTimeoutError if the deadline elapses.
            event_id: ID of the event, for logs and the timeout error.
            loop: Owning event loop. Defaults to the running loop.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._deadline = deadline
        self._event_id = event_id
        self._on_timeout = on_timeout
        self._lock = threading.Lock()
        self._state = AckState.IDLE
        self._sink: asyncio.Future[AckOutcome] = self._loop.create_future()
        self._timer: asyncio.TimerHandle | None = self._loop.call_later(deadline, self._expire)

    @property
    def state(self) -> AckState:
        return self._state

    @property
    def event_id(self) -> str | None:
        return self._event_id

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def done(self) -> bool:
        """Whether the token reached a terminal state."""
        return self._state is not AckState.IDLE

    def ack(self, response: Any = None) -> None:
        """Acknowledge the event and write the transport response.

        Only the first call before the deadline has an effect.

        Args:
            response: Optional response value (text, bytes, or JSON-serializable).

        Raises:
            TypeError, ValueError: If ``response`` cannot be serialized. The
                token stays idle in that case.
        """
        with self._lock:
            if self._state is not AckState.IDLE:
                logger.debug(
                    "Ignored acknowledgment on settled token",
                    event_id=self._event_id,
                    state=self._state.value,
                )
                return
            outcome = render_ack_response(response)
            self._state = AckState.ACKNOWLEDGED

        self._call_on_loop(self._settle, outcome)

    def cancel(self) -> bool:
        """Settle an idle token without emitting an error (used on shutdown).

        Returns:
            True if the token was idle and is now cancelled.
        """
        with self._lock:
            if self._state is not AckState.IDLE:
                return False
            self._state = AckState.CANCELLED

        self._call_on_loop(self._settle, AckOutcome(AckState.CANCELLED, status_code=503))
        return True

    async def wait(self) -> AckOutcome:
        """Wait for the token to settle and return the transport outcome."""
        return await self._sink

    def _call_on_loop(self, callback: Callable[..., None], *args: Any) -> None:
        if running_loop() is self._loop:
            callback(*args)
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop already closed; nobody is waiting on the sink anymore
            logger.debug("Event loop closed before token settled", event_id=self._event_id)

    def _settle(self, outcome: AckOutcome) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._sink.done():
            self._sink.set_result(outcome)

    def _expire(self) -> None:
        with self._lock:
            if self._state is not AckState.IDLE:
                return
            self._state = AckState.TIMED_OUT

        self._timer = None
        self._settle(AckOutcome(AckState.TIMED_OUT, status_code=500))

        timeout_ms = int(self._deadline * 1000)
        logger.warning("Acknowledgment timed out", event_id=self._event_id, timeout_ms=timeout_ms)
        if self._on_timeout is not None:
            self._on_timeout(AckTimeoutError(event_id=self._event_id, timeout_ms=timeout_ms))
