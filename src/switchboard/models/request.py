"""Inbound request model."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import generate_id, utc_now


class IncomingRequest(BaseModel):
    """Raw request as handed over by the transport.

    Attributes:
        id: Unique identifier for this request (for log correlation).
        body: Raw body bytes, exactly as received (signatures cover these bytes).
        headers: Header map with lower-cased names.
        received_at: Arrival instant.
        path: Endpoint path the request was posted to.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("req"))
    body: bytes = Field(default=b"", description="Raw request body")
    headers: dict[str, str] = Field(default_factory=dict, description="Lower-cased header map")
    received_at: datetime = Field(default_factory=utc_now, description="Arrival instant")
    path: str = Field(description="Endpoint path")

    @field_validator("headers", mode="before")
    @classmethod
    def _lowercase_headers(cls, value: Mapping[str, str]) -> dict[str, str]:
        return {str(k).lower(): str(v) for k, v in dict(value).items()}

    def header(self, name: str) -> str | None:
        """Look up a header case-insensitively."""
        return self.headers.get(name.lower())

    @property
    def content_type(self) -> str | None:
        return self.header("content-type")
