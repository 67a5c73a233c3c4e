"""Unit tests for the acknowledgment gate."""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime

import pytest
from pydantic import BaseModel

from switchboard.ack import AckOutcome, AckState, AckToken, render_ack_response
from switchboard.exceptions import AckTimeoutError


class Reply(BaseModel):
    text: str
    sent_at: datetime


class TestRenderAckResponse:
    """Tests for render_ack_response."""

    def test_none_is_empty(self):
        """No response value should give an empty 200 body."""
        outcome = render_ack_response(None)
        assert outcome.state is AckState.ACKNOWLEDGED
        assert outcome.status_code == 200
        assert outcome.content == b""
        assert outcome.media_type is None

    def test_text_is_raw(self):
        """Text should be sent as-is."""
        outcome = render_ack_response("Got it")
        assert outcome.content == b"Got it"
        assert outcome.media_type == "text/plain"

    def test_bytes_are_raw(self):
        """Bytes should be sent unchanged."""
        assert render_ack_response(b"\x00raw").content == b"\x00raw"

    def test_mapping_is_json(self):
        """Mappings should be serialized as JSON."""
        outcome = render_ack_response({"text": "ok", "blocks": []})
        assert outcome.media_type == "application/json"
        assert json.loads(outcome.content) == {"text": "ok", "blocks": []}

    def test_pydantic_model_is_json(self):
        """Pydantic models and datetimes should be JSON encodable."""
        reply = Reply(text="hi", sent_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))
        outcome = render_ack_response(reply)
        assert json.loads(outcome.content) == {
            "text": "hi",
            "sent_at": "2024-01-02T03:04:05Z",
        }

    def test_nan_rejected(self):
        """Values that are not valid JSON should raise."""
        with pytest.raises(ValueError):
            render_ack_response({"value": float("nan")})

    def test_outcome_to_response(self):
        """An outcome should render to a transport response."""
        response = AckOutcome(AckState.TIMED_OUT, status_code=500).to_response()
        assert response.status_code == 500
        assert response.body == b""


class TestAckToken:
    """Tests for AckToken."""

    @pytest.mark.asyncio
    async def test_ack_settles_response(self):
        """ack() should settle the sink with the rendered response."""
        token = AckToken(1.0)
        token.ack({"ok": True})

        outcome = await token.wait()

        assert token.state is AckState.ACKNOWLEDGED
        assert token.done
        assert outcome.status_code == 200
        assert json.loads(outcome.content) == {"ok": True}

    @pytest.mark.asyncio
    async def test_ack_is_idempotent(self):
        """Only the first ack() should take effect."""
        token = AckToken(1.0)
        token.ack("first")
        token.ack("second")
        token.ack()

        outcome = await token.wait()

        assert outcome.content == b"first"
        assert token.state is AckState.ACKNOWLEDGED

    @pytest.mark.asyncio
    async def test_timeout_emits_error_once(self):
        """An unacknowledged token should time out with a 500 and one error."""
        errors: list[AckTimeoutError] = []
        token = AckToken(0.05, on_timeout=errors.append, event_id="evt_test")

        outcome = await token.wait()

        assert outcome.state is AckState.TIMED_OUT
        assert outcome.status_code == 500
        assert outcome.content == b""
        assert token.state is AckState.TIMED_OUT
        assert len(errors) == 1
        assert isinstance(errors[0], AckTimeoutError)
        assert errors[0].event_id == "evt_test"
        assert errors[0].timeout_ms == 50

    @pytest.mark.asyncio
    async def test_late_ack_is_noop(self):
        """ack() after the timeout should change nothing."""
        errors: list[AckTimeoutError] = []
        token = AckToken(0.02, on_timeout=errors.append)
        outcome = await token.wait()

        token.ack("too late")

        assert token.state is AckState.TIMED_OUT
        assert outcome.status_code == 500
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_ack_before_deadline_prevents_timeout(self):
        """A timely ack() should cancel the timer."""
        errors: list[AckTimeoutError] = []
        token = AckToken(0.05, on_timeout=errors.append)
        token.ack()

        await token.wait()
        await asyncio.sleep(0.1)

        assert token.state is AckState.ACKNOWLEDGED
        assert errors == []

    @pytest.mark.asyncio
    async def test_unserializable_ack_leaves_token_idle(self):
        """A serialization failure should raise and keep the token idle."""
        token = AckToken(1.0)

        with pytest.raises(ValueError):
            token.ack({"value": float("inf")})

        assert token.state is AckState.IDLE
        token.ack("recovered")
        outcome = await token.wait()
        assert outcome.content == b"recovered"

    @pytest.mark.asyncio
    async def test_cancel_settles_with_503(self):
        """cancel() should settle an idle token without emitting an error."""
        errors: list[AckTimeoutError] = []
        token = AckToken(0.05, on_timeout=errors.append)

        assert token.cancel() is True
        outcome = await token.wait()
        await asyncio.sleep(0.1)

        assert outcome.state is AckState.CANCELLED
        assert outcome.status_code == 503
        assert errors == []

    @pytest.mark.asyncio
    async def test_cancel_after_ack_is_noop(self):
        """cancel() on a settled token should return False."""
        token = AckToken(1.0)
        token.ack()

        assert token.cancel() is False
        assert token.state is AckState.ACKNOWLEDGED

    @pytest.mark.asyncio
    async def test_ack_from_worker_thread(self):
        """ack() should be safe to call from another thread."""
        token = AckToken(1.0)
        thread = threading.Thread(target=token.ack, args=("from thread",))
        thread.start()

        outcome = await asyncio.wait_for(token.wait(), timeout=1.0)
        thread.join()

        assert outcome.content == b"from thread"

    @pytest.mark.asyncio
    async def test_racing_acks_settle_once(self):
        """Concurrent ack() calls from many threads should settle exactly once."""
        token = AckToken(1.0)
        threads = [
            threading.Thread(target=token.ack, args=(f"ack-{i}",)) for i in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        outcome = await asyncio.wait_for(token.wait(), timeout=1.0)

        assert token.state is AckState.ACKNOWLEDGED
        assert outcome.content.decode().startswith("ack-")

    @pytest.mark.asyncio
    async def test_deadline_and_event_id_exposed(self):
        """Token should expose its deadline and event id."""
        token = AckToken(2.8, event_id="evt_abc")
        assert token.deadline == 2.8
        assert token.event_id == "evt_abc"
        assert token.state is AckState.IDLE
        assert not token.done
        token.cancel()
