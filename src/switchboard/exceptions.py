"""Switchboard exception hierarchy.

Provides structured exceptions for every failure the receiver can report.
All exceptions inherit from SwitchboardError for easy catching.

Pre-dispatch errors (AuthenticityError, PayloadParseError) short-circuit the
request pipeline. Post-dispatch errors (AckTimeoutError,
OutOfBandDeliveryError, EventHandlerError) are only ever published on the
receiver's error channel. Lifecycle errors (ListenError, ShutdownError) are
raised directly to the caller of start() / stop().
"""

from __future__ import annotations


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "switchboard_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class AuthenticityError(SwitchboardError):
    """Request signing verification failed.

    Raised for a missing or malformed signature, a stale timestamp, or a
    signature mismatch.
    """

    code: str = "receiver_authenticity_error"


class PayloadParseError(SwitchboardError):
    """Request body is malformed for its declared encoding."""

    code: str = "receiver_payload_parse_error"


class AckTimeoutError(SwitchboardError):
    """An event was not acknowledged before its deadline.

    Attributes:
        event_id: ID of the event that timed out.
        timeout_ms: Deadline that elapsed, in milliseconds.
    """

    code: str = "receiver_ack_timeout_error"

    def __init__(self, event_id: str | None = None, timeout_ms: int | None = None) -> None:
        self.event_id = event_id
        self.timeout_ms = timeout_ms
        super().__init__(
            "An incoming event was not acknowledged before the timeout. "
            "Ensure that ack() is called in your event handlers."
        )

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "event_id": self.event_id,
                "timeout_ms": self.timeout_ms,
                "message": self.message,
            }
        }


class OutOfBandDeliveryError(SwitchboardError):
    """Delivery to an event's response URL failed.

    Attributes:
        url: Callback target the delivery was sent to.
        status_code: HTTP status returned, if a response was received.
    """

    code: str = "receiver_out_of_band_delivery_error"

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"Out-of-band delivery to {url} failed: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "url": self.url,
                "status_code": self.status_code,
                "message": self.message,
            }
        }


class EventHandlerError(SwitchboardError):
    """An event subscriber raised while handling an event.

    The original exception is available as ``__cause__``.
    """

    code: str = "receiver_event_handler_error"

    def __init__(self, event_id: str, cause: BaseException) -> None:
        self.event_id = event_id
        super().__init__(f"Event handler failed for {event_id}: {cause!r}")


class ListenError(SwitchboardError):
    """The receiver could not start listening."""

    code: str = "receiver_listen_error"


class ShutdownError(SwitchboardError):
    """The receiver could not be stopped cleanly."""

    code: str = "receiver_shutdown_error"


class ConfigurationError(SwitchboardError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
