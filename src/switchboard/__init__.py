"""Switchboard: the inbound edge for signed webhook callbacks.

Verifies request signatures, decodes JSON and form-encoded bodies, answers
protocol handshakes, and hands each event to subscribers together with a
deadline-bound acknowledgment and, when the body carries a response URL,
an out-of-band responder.

Quick Start:
    from switchboard import Receiver

    receiver = Receiver.create(signing_secret="8f742231b10e8888abcd99yyyzzz85a5")

    @receiver.on_event
    async def handle(event):
        event.ack()
        if event.respond is not None:
            event.respond({"text": "Working on it"})

    @receiver.on_error
    def report(error):
        print(error)

    server = await receiver.start(3000)
    ...
    await receiver.stop()

Response codes:
    - 200: handshake answered, or event acknowledged
    - 400: body could not be decoded
    - 401: signature missing, malformed, stale or mismatched
    - 500: event not acknowledged before the deadline
    - 503: receiver stopped before the event was acknowledged
"""

__version__ = "0.1.0"

# Acknowledgment
from .ack import AckOutcome, AckState, AckToken

# Configuration
from .config import Settings

# Exceptions
from .exceptions import (
    AckTimeoutError,
    AuthenticityError,
    ConfigurationError,
    EventHandlerError,
    ListenError,
    OutOfBandDeliveryError,
    PayloadParseError,
    ShutdownError,
    SwitchboardError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import IncomingRequest, NormalizedEvent, ReceiverEvent

# Receiver
from .receiver import Receiver
from .respond import OutOfBandResponder

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    # Exceptions
    "SwitchboardError",
    "AuthenticityError",
    "PayloadParseError",
    "AckTimeoutError",
    "OutOfBandDeliveryError",
    "EventHandlerError",
    "ListenError",
    "ShutdownError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "IncomingRequest",
    "NormalizedEvent",
    "ReceiverEvent",
    # Receiver
    "Receiver",
    "AckToken",
    "AckState",
    "AckOutcome",
    "OutOfBandResponder",
]
