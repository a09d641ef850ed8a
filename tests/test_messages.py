"""Tests for the host message contract."""

from __future__ import annotations

import pytest

from docuprint.messages import (
    CANCEL,
    START,
    CancelRequest,
    ErrorEvent,
    FailureReason,
    MessageError,
    ProgressEvent,
    ReadyEvent,
    StartRequest,
    StartResponse,
    decode_message,
)


class TestDecodeMessage:
    def test_start_request(self):
        message = decode_message({"action": START, "url": "https://docs.example.com/"})
        assert message == StartRequest(url="https://docs.example.com/")

    def test_start_request_with_output(self):
        message = decode_message(
            {"action": START, "url": "https://docs.example.com/", "output": "/tmp/x.html"}
        )
        assert message.output == "/tmp/x.html"

    def test_cancel_request(self):
        assert decode_message({"action": CANCEL}) == CancelRequest()

    def test_events_round_trip(self):
        for event in (
            ProgressEvent(current=2, total=5, note='Processing "Intro"...'),
            ReadyEvent(output="/tmp/docs.html"),
            ErrorEvent(error="No links to crawl were found"),
        ):
            assert decode_message(event.to_dict()) == event

    def test_unknown_tag(self):
        with pytest.raises(MessageError, match="Unknown message tag"):
            decode_message({"action": "DOCUPRINT_PAUSE"})

    def test_missing_tag(self):
        with pytest.raises(MessageError):
            decode_message({"url": "https://docs.example.com/"})

    def test_start_without_url(self):
        with pytest.raises(MessageError):
            decode_message({"action": START})
        with pytest.raises(MessageError):
            decode_message({"action": START, "url": ""})

    def test_malformed_progress(self):
        with pytest.raises(MessageError, match="Malformed"):
            decode_message({"type": "DOCUPRINT_PROGRESS", "current": "x", "total": 3})

    def test_not_a_mapping(self):
        with pytest.raises(MessageError):
            decode_message(["DOCUPRINT_START"])  # type: ignore[arg-type]


class TestStartResponse:
    def test_ok(self):
        assert StartResponse(ok=True).to_dict() == {"ok": True}

    def test_failure_reason_values(self):
        response = StartResponse(ok=False, reason=FailureReason.no_links)
        assert response.to_dict() == {"ok": False, "reason": "no-links"}
        assert FailureReason.popup_blocked.value == "popup-blocked"
        assert FailureReason.busy == "busy"
