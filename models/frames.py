"""Relay websocket frames.

Every frame on `/ws/translate` is a JSON object tagged by its `action` field.
`parse_frame` turns raw text into one of the dataclasses below and
`encode_frame` does the reverse. Actions outside the known set decode to
`UnknownFrame` so both ends can log and ignore them.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


class FrameError(ValueError):
    """Raised when a payload is not a valid relay frame."""


@dataclass
class ConnectFrame:
    session_id: str
    user_language: Optional[str] = None
    action: str = field(default="connect", init=False)


@dataclass
class HeartbeatFrame:
    timestamp: Optional[float] = None
    action: str = field(default="heartbeat", init=False)


@dataclass
class TranslateFrame:
    source_text: str
    target_language: str
    source_language: str = "auto"
    message_id: Optional[int] = None
    action: str = field(default="translate", init=False)


@dataclass
class StatusFrame:
    """Server status report; `action` is `connect_result` or `status`."""

    status: str
    session_id: Optional[str] = None
    message: Optional[str] = None
    action: str = "status"


@dataclass
class TranslateResultFrame:
    status: str
    message_id: Optional[int] = None
    translated_text: Optional[str] = None
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    error: Optional[str] = None
    action: str = field(default="translate_result", init=False)

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class NewMessageFrame:
    message: Dict[str, Any]
    action: str = field(default="new_message", init=False)


@dataclass
class UnknownFrame:
    action: Optional[str]
    payload: Dict[str, Any]


Frame = Union[
    ConnectFrame,
    HeartbeatFrame,
    TranslateFrame,
    StatusFrame,
    TranslateResultFrame,
    NewMessageFrame,
    UnknownFrame,
]


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise FrameError(f"message_id must be an integer, got {value!r}") from exc


def _required_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise FrameError(f"'{key}' is required for action {payload.get('action')!r}")
    return value


def frame_from_dict(payload: Dict[str, Any]) -> Frame:
    """Build a typed frame from an already-decoded JSON object."""
    if not isinstance(payload, dict):
        raise FrameError("Frame must be a JSON object.")
    action = payload.get("action")
    if action == "connect":
        return ConnectFrame(
            session_id=_required_str(payload, "session_id"),
            user_language=payload.get("user_language"),
        )
    if action == "heartbeat":
        return HeartbeatFrame(timestamp=payload.get("timestamp"))
    if action == "translate":
        return TranslateFrame(
            source_text=_required_str(payload, "source_text"),
            target_language=_required_str(payload, "target_language"),
            source_language=payload.get("source_language") or "auto",
            message_id=_optional_int(payload.get("message_id")),
        )
    if action in ("connect_result", "status"):
        return StatusFrame(
            status=_required_str(payload, "status"),
            session_id=payload.get("session_id"),
            message=payload.get("message"),
            action=action,
        )
    if action == "translate_result":
        return TranslateResultFrame(
            status=_required_str(payload, "status"),
            message_id=_optional_int(payload.get("message_id")),
            translated_text=payload.get("translated_text"),
            source_language=payload.get("source_language"),
            target_language=payload.get("target_language"),
            error=payload.get("error"),
        )
    if action == "new_message":
        message = payload.get("message")
        if not isinstance(message, dict):
            raise FrameError("'message' must be an object for action 'new_message'")
        return NewMessageFrame(message=message)
    return UnknownFrame(action=action, payload=payload)


def parse_frame(raw: Union[str, bytes]) -> Frame:
    """Decode raw websocket text into a typed frame."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise FrameError("Payload must be JSON") from exc
    return frame_from_dict(payload)


def frame_to_dict(frame: Frame) -> Dict[str, Any]:
    if isinstance(frame, UnknownFrame):
        return dict(frame.payload)
    data = {key: value for key, value in frame.__dict__.items() if value is not None}
    data["action"] = frame.action
    return data


def encode_frame(frame: Frame) -> str:
    return json.dumps(frame_to_dict(frame), ensure_ascii=False)


def heartbeat(with_timestamp: bool = False) -> HeartbeatFrame:
    return HeartbeatFrame(timestamp=time.time() if with_timestamp else None)
