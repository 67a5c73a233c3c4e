"""Data models for Switchboard.

Models:
    - IncomingRequest: Raw request bytes, headers, arrival instant and path
    - NormalizedEvent: Decoded event body with its optional discriminant
    - ReceiverEvent: Event + acknowledgment token + optional responder,
      as delivered to subscribers
"""

from .base import generate_id, utc_now
from .event import RESPONSE_URL_FIELD, NormalizedEvent, ReceiverEvent
from .request import IncomingRequest

__all__ = [
    "RESPONSE_URL_FIELD",
    "IncomingRequest",
    "NormalizedEvent",
    "ReceiverEvent",
    "generate_id",
    "utc_now",
]
