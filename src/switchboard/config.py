"""Configuration management for Switchboard."""

from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


DEFAULT_ENDPOINTS: dict[str, str] = {"events": "/slack/events"}


class Settings(BaseSettings):
    """Switchboard receiver configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the SWITCHBOARD_ prefix. For example:
        SWITCHBOARD_SIGNING_SECRET=8f742231b10e8888abcd99yyyzzz85a5
        SWITCHBOARD_ACK_TIMEOUT_MS=2500
        SWITCHBOARD_ENDPOINTS='{"events": "/slack/events", "actions": "/slack/actions"}'

    Every configured endpoint path feeds the same request pipeline and
    shares the signing secret, acknowledgment deadline and freshness window.
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Request signing
    signing_secret: str = Field(
        min_length=1,
        description="Shared secret used to verify request signatures (HMAC-SHA256)",
    )
    signature_header: str = Field(
        default="x-slack-signature",
        description="Header carrying the '<version>=<hex digest>' signature",
    )
    timestamp_header: str = Field(
        default="x-slack-request-timestamp",
        description="Header carrying the request timestamp in epoch seconds",
    )
    freshness_window_seconds: int = Field(
        default=300,
        ge=1,
        description="Maximum age of a request timestamp before it is treated as a replay",
    )

    # Routing
    endpoints: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ENDPOINTS),
        description="Named endpoint paths that accept inbound requests",
    )

    # Acknowledgment
    ack_timeout_ms: int = Field(
        default=2800,
        ge=1,
        description="Deadline for handlers to acknowledge an event, in milliseconds",
    )
    respond_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="HTTP timeout for out-of-band deliveries to response URLs",
    )

    # Listener
    host: str = Field(
        default="0.0.0.0",
        description="Interface the listener binds to",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "SWITCHBOARD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @field_validator("endpoints", mode="before")
    @classmethod
    def _coerce_endpoints(cls, value: Any) -> Any:
        """Accept a bare path as a single unnamed endpoint."""
        if isinstance(value, str):
            return {"default": value}
        return value

    @field_validator("endpoints")
    @classmethod
    def _validate_endpoints(cls, value: dict[str, str]) -> dict[str, str]:
        """Require at least one endpoint, each an absolute path."""
        if not value:
            raise ValueError("at least one endpoint path must be configured")
        for name, path in value.items():
            if not path.startswith("/"):
                raise ValueError(f"endpoint {name!r} must be an absolute path, got {path!r}")
        return value

    @field_validator("signature_header", "timestamp_header")
    @classmethod
    def _lowercase_header(cls, value: str) -> str:
        """Header lookups are made against lower-cased names."""
        return value.lower()

    @property
    def endpoint_paths(self) -> list[str]:
        """Distinct endpoint paths in configuration order."""
        return list(dict.fromkeys(self.endpoints.values()))

    @property
    def ack_timeout_seconds(self) -> float:
        """Acknowledgment deadline in seconds."""
        return self.ack_timeout_ms / 1000
