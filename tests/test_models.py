"""Tests for Switchboard data models."""

import pytest
from pydantic import ValidationError
from starlette.datastructures import Headers

from switchboard.ack import AckToken
from switchboard.models import IncomingRequest, NormalizedEvent, ReceiverEvent, generate_id


class TestGenerateId:
    """Tests for generate_id."""

    def test_prefix(self):
        """IDs should carry their prefix."""
        assert generate_id("evt").startswith("evt_")

    def test_unique(self):
        """IDs should be unique."""
        ids = {generate_id("req") for _ in range(100)}
        assert len(ids) == 100


class TestIncomingRequest:
    """Tests for IncomingRequest."""

    def test_headers_lowercased(self):
        """Header names should be stored lower-cased."""
        request = IncomingRequest(
            body=b"{}",
            headers={"Content-Type": "application/json", "X-Slack-Signature": "v0=ab"},
            path="/slack/events",
        )
        assert request.headers == {"content-type": "application/json", "x-slack-signature": "v0=ab"}
        assert request.header("X-SLACK-SIGNATURE") == "v0=ab"
        assert request.content_type == "application/json"
        assert request.id.startswith("req_")

    def test_accepts_starlette_headers(self):
        """A transport header mapping should be accepted."""
        request = IncomingRequest(
            headers=Headers({"X-Slack-Request-Timestamp": "1700000000"}),
            path="/slack/events",
        )
        assert request.header("x-slack-request-timestamp") == "1700000000"

    def test_missing_header(self):
        """Missing headers should read as None."""
        request = IncomingRequest(path="/slack/events")
        assert request.header("x-slack-signature") is None
        assert request.content_type is None

    def test_frozen(self):
        """Requests should be immutable."""
        request = IncomingRequest(path="/slack/events")
        with pytest.raises(ValidationError):
            request.path = "/other"


class TestNormalizedEvent:
    """Tests for NormalizedEvent."""

    def test_type_discriminant(self):
        """type should expose a string discriminant."""
        assert NormalizedEvent(body={"type": "app_mention"}).type == "app_mention"
        assert NormalizedEvent(body={"type": 3}).type is None
        assert NormalizedEvent(body={}).type is None

    def test_response_url(self):
        """response_url should expose a non-empty string callback target."""
        url = "https://hooks.example.com/a"
        assert NormalizedEvent(body={"response_url": url}).response_url == url
        assert NormalizedEvent(body={"response_url": ""}).response_url is None
        assert NormalizedEvent(body={}).response_url is None

    def test_id_prefix(self):
        """Events should get an evt_ id."""
        assert NormalizedEvent(body={}).id.startswith("evt_")


class TestReceiverEvent:
    """Tests for ReceiverEvent."""

    @pytest.mark.asyncio
    async def test_ack_delegates_to_token(self):
        """ack() should acknowledge the underlying token."""
        token = AckToken(1.0)
        event = ReceiverEvent(event=NormalizedEvent(body={"a": 1}), ack_token=token)

        event.ack("ok")
        outcome = await token.wait()

        assert outcome.content == b"ok"
        assert event.body == {"a": 1}
        assert event.respond is None
