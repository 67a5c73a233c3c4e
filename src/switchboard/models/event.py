"""Normalized event and the emission delivered to subscribers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

if TYPE_CHECKING:
    from switchboard.ack import AckToken
    from switchboard.respond import OutOfBandResponder

# Body field naming the callback target for out-of-band responses
RESPONSE_URL_FIELD = "response_url"


class NormalizedEvent(BaseModel):
    """Decoded event body, independent of the transport encoding.

    Attributes:
        id: Unique identifier for this event.
        body: Decoded body (JSON object or form fields).
        endpoint: Endpoint path the event arrived on.
        received_at: When the underlying request arrived.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    body: dict[str, Any] = Field(default_factory=dict, description="Decoded event body")
    endpoint: str = Field(default="/", description="Endpoint path")
    received_at: datetime = Field(default_factory=utc_now, description="Arrival instant")

    @property
    def type(self) -> str | None:
        """Discriminant of the body, when it carries one."""
        value = self.body.get("type")
        return value if isinstance(value, str) else None

    @property
    def response_url(self) -> str | None:
        """Callback target for out-of-band responses, when present."""
        value = self.body.get(RESPONSE_URL_FIELD)
        return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class ReceiverEvent:
    """What subscribers receive for each accepted request.

    Handlers must call ``ack()`` exactly once, before the deadline, to
    produce the synchronous HTTP response. ``respond`` is only set when the
    body carries a response URL.

    Example:
        ```python
        @receiver.on_event
        async def handle(event: ReceiverEvent) -> None:
            event.ack()
            if event.respond is not None:
                event.respond({"text": "Working on it"})
        ```
    """

    event: NormalizedEvent
    ack_token: AckToken
    responder: OutOfBandResponder | None = None

    @property
    def body(self) -> dict[str, Any]:
        return self.event.body

    def ack(self, response: Any = None) -> None:
        """Acknowledge the event; later calls are no-ops."""
        self.ack_token.ack(response)

    @property
    def respond(self) -> Callable[[Any], None] | None:
        if self.responder is None:
            return None
        return self.responder.respond
