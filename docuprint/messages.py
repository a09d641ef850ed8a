"""Messages exchanged between a host (CLI, MCP server) and the crawl core.

Every message is a small dataclass with a fixed tag. ``decode_message``
turns a plain mapping, as received from a host, back into its dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

START = "DOCUPRINT_START"
CANCEL = "DOCUPRINT_CANCEL"
PROGRESS = "DOCUPRINT_PROGRESS"
READY = "DOCUPRINT_READY"
ERROR = "DOCUPRINT_ERROR"


class MessageError(ValueError):
    """Raised for payloads that are not a known message."""


class FailureReason(str, Enum):
    """Why a start request did not produce a document."""

    busy = "busy"
    no_links = "no-links"
    cancelled = "cancelled"
    popup_blocked = "popup-blocked"


@dataclass(frozen=True)
class StartRequest:
    url: str
    output: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": START, "url": self.url}
        if self.output:
            payload["output"] = self.output
        return payload


@dataclass(frozen=True)
class CancelRequest:
    def to_dict(self) -> Dict[str, Any]:
        return {"action": CANCEL}


@dataclass(frozen=True)
class ProgressEvent:
    current: int
    total: int
    note: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": PROGRESS,
            "current": self.current,
            "total": self.total,
            "note": self.note,
        }


@dataclass(frozen=True)
class ReadyEvent:
    output: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": READY, "output": self.output}


@dataclass(frozen=True)
class ErrorEvent:
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": ERROR, "error": self.error}


@dataclass(frozen=True)
class StartResponse:
    """Final status of a start request."""

    ok: bool
    reason: Optional[FailureReason] = None
    output: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok}
        if self.reason is not None:
            payload["reason"] = self.reason.value
        if self.output:
            payload["output"] = self.output
        return payload


HostRequest = Union[StartRequest, CancelRequest]
HostEvent = Union[ProgressEvent, ReadyEvent, ErrorEvent]
Message = Union[StartRequest, CancelRequest, ProgressEvent, ReadyEvent, ErrorEvent]


def decode_message(payload: Mapping[str, Any]) -> Message:
    """Decode a host payload tagged by ``action`` (requests) or ``type`` (events).

    Raises:
        MessageError: If the tag is missing or unknown, or fields are missing.
    """
    if not isinstance(payload, Mapping):
        raise MessageError(f"Message must be a mapping, got {type(payload).__name__}")

    tag = payload.get("action") or payload.get("type")
    try:
        if tag == START:
            url = payload["url"]
            if not url:
                raise MessageError("Start request needs a url")
            return StartRequest(url=str(url), output=payload.get("output") or None)
        if tag == CANCEL:
            return CancelRequest()
        if tag == PROGRESS:
            return ProgressEvent(
                current=int(payload["current"]),
                total=int(payload["total"]),
                note=str(payload.get("note", "")),
            )
        if tag == READY:
            return ReadyEvent(output=str(payload.get("output", "")))
        if tag == ERROR:
            return ErrorEvent(error=str(payload["error"]))
    except (KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, MessageError):
            raise
        raise MessageError(f"Malformed {tag} message: {exc}") from exc

    raise MessageError(f"Unknown message tag: {tag!r}")
