from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from onebot_sauce.parsing import as_dict, as_int, render_segments


@dataclass(frozen=True)
class IncomingMessage:
    message_id: int
    user_id: int
    text: str
    group_id: int | None = None

    @property
    def is_group(self) -> bool:
        return self.group_id is not None


@dataclass(frozen=True)
class GroupReply:
    group_id: int
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": "send_group_msg",
            "params": {"group_id": self.group_id, "message": self.text},
        }


@dataclass(frozen=True)
class PrivateReply:
    user_id: int
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": "send_private_msg",
            "params": {"user_id": self.user_id, "message": self.text},
        }


OutboundAction = GroupReply | PrivateReply


def reply_to(message: IncomingMessage, text: str) -> OutboundAction:
    if message.group_id is not None:
        return GroupReply(group_id=message.group_id, text=text)
    return PrivateReply(user_id=message.user_id, text=text)


def parse_onebot_event(payload: dict[str, Any]) -> IncomingMessage | None:
    event = as_dict(payload)
    if event.get("post_type") != "message":
        return None

    message_type = event.get("message_type")
    if message_type not in {"group", "private"}:
        return None

    message_id = as_int(event.get("message_id"))
    user_id = as_int(event.get("user_id"))
    if message_id is None or user_id is None:
        return None

    group_id: int | None = None
    if message_type == "group":
        group_id = as_int(event.get("group_id"))
        if group_id is None:
            return None

    raw_message = event.get("message")
    if isinstance(raw_message, list):
        text = render_segments(raw_message)
    elif isinstance(raw_message, str):
        text = raw_message
    else:
        raw_text = event.get("raw_message")
        text = raw_text if isinstance(raw_text, str) else ""

    if not text:
        return None

    return IncomingMessage(
        message_id=message_id,
        user_id=user_id,
        text=text,
        group_id=group_id,
    )


def dedupe_key(message: IncomingMessage) -> str:
    return f"{message.group_id or 'dm'}|{message.user_id}|{message.message_id}"
