"""Payload normalization for inbound requests.

The platform posts two encodings to the same endpoints:
- ``application/json``: the body is a JSON object
- ``application/x-www-form-urlencoded``: either plain form fields (slash
  commands) or a single ``payload`` field holding a JSON string
  (interactive actions)

Both decode to the same canonical ``dict`` body.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qsl

from switchboard.exceptions import PayloadParseError

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
PAYLOAD_FIELD = "payload"


def media_type(content_type: str | None) -> str:
    """Return the bare, lower-cased media type of a Content-Type header."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _decode_text(raw_body: bytes) -> str:
    try:
        return raw_body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadParseError("Request body is not valid UTF-8") from e


def _load_object(text: str, what: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"Invalid JSON in {what}: {e.msg}") from e
    if not isinstance(value, dict):
        raise PayloadParseError(f"{what.capitalize()} must be a JSON object")
    return value


def parse_form(text: str) -> dict[str, Any]:
    """Decode url-encoded form fields.

    A key that appears once maps to its string value; a repeated key maps
    to the list of its values in order.
    """
    fields: dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        if key not in fields:
            fields[key] = value
        elif isinstance(fields[key], list):
            fields[key].append(value)
        else:
            fields[key] = [fields[key], value]
    return fields


def parse_body(raw_body: bytes, content_type: str | None) -> dict[str, Any]:
    """Decode a raw request body into a canonical event body.

    Args:
        raw_body: Raw request body bytes.
        content_type: Value of the Content-Type header.

    Returns:
        The decoded body.

    Raises:
        PayloadParseError: If the body is malformed for its encoding.
    """
    text = _decode_text(raw_body)

    if media_type(content_type) == FORM_CONTENT_TYPE:
        fields = parse_form(text)
        payload = fields.get(PAYLOAD_FIELD)
        if isinstance(payload, str):
            return _load_object(payload, "payload field")
        return fields

    return _load_object(text, "request body")
