from __future__ import annotations

import asyncio
import json

import pytest

import docuprint
from docuprint import mcp_server
from docuprint.messages import (
    ErrorEvent,
    FailureReason,
    ProgressEvent,
    ReadyEvent,
    StartResponse,
)


def _tool(obj):
    """The plain coroutine function behind an MCP tool."""
    return getattr(obj, "fn", obj)


class FakeSession:
    events = []
    response = StartResponse(ok=True, output="/tmp/docs.html")
    gate = None
    created = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.running = False
        self.cancelled = False
        FakeSession.created.append(self)

    def cancel(self):
        self.cancelled = True
        return StartResponse(ok=True)

    async def start(self, url, *, output=None):
        self.running = True
        try:
            self.url = url
            self.output = output
            if FakeSession.gate is not None:
                await FakeSession.gate.wait()
            for event in FakeSession.events:
                self.kwargs["observer"](event)
            return FakeSession.response
        finally:
            self.running = False


@pytest.fixture(autouse=True)
def fake_session(monkeypatch):
    FakeSession.events = []
    FakeSession.response = StartResponse(ok=True, output="/tmp/docs.html")
    FakeSession.gate = None
    FakeSession.created = []
    monkeypatch.setattr(mcp_server, "PrintSession", FakeSession)
    monkeypatch.setattr(mcp_server, "_active", None)
    monkeypatch.delenv("CRAWL_AUTH_STORAGE_STATE", raising=False)
    monkeypatch.delenv("CRAWL_AUTH_COOKIES_FILE", raising=False)
    monkeypatch.delenv("CRAWL_AUTH_PROFILE", raising=False)
    monkeypatch.delenv("DOCUPRINT_SITE_CONFIG", raising=False)
    return FakeSession


def test_lazy_mcp_attribute() -> None:
    assert docuprint.mcp is mcp_server.mcp
    assert docuprint.get_mcp_server() is mcp_server.mcp


@pytest.mark.asyncio
async def test_print_docs_reports_status_and_events(fake_session) -> None:
    fake_session.events = [
        ProgressEvent(current=0, total=1, note="Collecting sidebar links..."),
        ProgressEvent(current=1, total=2, note="Skipped failed page: https://docs.example.com/b"),
        ProgressEvent(current=2, total=2, note='Processing "Usage"...'),
        ReadyEvent(output="/tmp/docs.html"),
    ]

    raw = await _tool(mcp_server.print_docs)(
        url="https://docs.example.com/guide", output="/tmp/docs.html"
    )
    data = json.loads(raw)

    assert data["ok"] is True
    assert data["output"] == "/tmp/docs.html"
    assert data["events"]["progress"] == 3
    assert data["events"]["last_progress"] == {"current": 2, "total": 2}
    assert data["events"]["skipped_pages"] == [
        "Skipped failed page: https://docs.example.com/b"
    ]
    session = fake_session.created[0]
    assert session.kwargs["open_browser"] is False
    assert session.kwargs["overrides"] is None


@pytest.mark.asyncio
async def test_print_docs_failure_reason(fake_session) -> None:
    fake_session.response = StartResponse(ok=False, reason=FailureReason.no_links)
    fake_session.events = [ErrorEvent(error="No links to crawl were found")]

    data = json.loads(await _tool(mcp_server.print_docs)(url="https://docs.example.com"))

    assert data["ok"] is False
    assert data["reason"] == "no-links"
    assert data["events"]["errors"] == ["No links to crawl were found"]


@pytest.mark.asyncio
async def test_print_docs_forwards_overrides_and_auth(fake_session, tmp_path) -> None:
    state = tmp_path / "state.json"
    state.write_text("{}")

    await _tool(mcp_server.print_docs)(
        url="https://docs.example.com",
        concurrency=2,
        delay=1.0,
        storage_state=str(state),
    )

    kwargs = fake_session.created[0].kwargs
    assert kwargs["overrides"].concurrency == 2
    assert kwargs["overrides"].delay == 1.0
    assert kwargs["auth"].storage_state == str(state)


@pytest.mark.asyncio
async def test_print_docs_invalid_storage_state(fake_session) -> None:
    data = json.loads(
        await _tool(mcp_server.print_docs)(
            url="https://docs.example.com", storage_state="/nonexistent/state.json"
        )
    )

    assert data["ok"] is False
    assert "not found" in data["error"]
    assert fake_session.created == []


@pytest.mark.asyncio
async def test_busy_and_cancel(fake_session) -> None:
    fake_session.gate = asyncio.Event()
    print_docs = _tool(mcp_server.print_docs)

    first = asyncio.create_task(print_docs(url="https://docs.example.com"))
    while not fake_session.created or not fake_session.created[0].running:
        await asyncio.sleep(0)

    busy = json.loads(await print_docs(url="https://docs.example.com/other"))
    cancelled = json.loads(await _tool(mcp_server.cancel_print)())
    fake_session.gate.set()
    await first

    assert busy == {"ok": False, "reason": "busy"}
    assert cancelled == {"ok": True, "running": True}
    assert fake_session.created[0].cancelled is True
    assert len(fake_session.created) == 1


@pytest.mark.asyncio
async def test_cancel_without_crawl(fake_session) -> None:
    data = json.loads(await _tool(mcp_server.cancel_print)())
    assert data == {"ok": True, "running": False}
