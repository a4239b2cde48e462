"""Messenger webhook payload types and the session value model."""

from __future__ import annotations

from typing import Any, TypeAlias

import msgspec

__all__ = [
    "Attachment",
    "AttachmentPayload",
    "Entry",
    "IncomingMessage",
    "MessagingEvent",
    "Participant",
    "Postback",
    "QuickReply",
    "Session",
    "SessionValue",
    "WebhookBody",
    "parse_event",
]

SessionValue: TypeAlias = (
    str | int | float | bool | None | list[Any] | dict[str, Any]
)
Session: TypeAlias = dict[str, SessionValue]


class Participant(msgspec.Struct, forbid_unknown_fields=False):
    id: str | None = None


class AttachmentPayload(msgspec.Struct, forbid_unknown_fields=False):
    url: str | None = None
    title: str | None = None
    sticker_id: int | None = None


class Attachment(msgspec.Struct, forbid_unknown_fields=False):
    type: str
    payload: AttachmentPayload | None = None

    @property
    def url(self) -> str | None:
        return self.payload.url if self.payload is not None else None


class QuickReply(msgspec.Struct, forbid_unknown_fields=False):
    payload: str


class IncomingMessage(msgspec.Struct, forbid_unknown_fields=False):
    mid: str | None = None
    text: str | None = None
    quick_reply: QuickReply | None = None
    attachments: list[Attachment] = msgspec.field(default_factory=list)
    is_echo: bool | None = None


class Postback(msgspec.Struct, forbid_unknown_fields=False):
    payload: str | None = None
    title: str | None = None
    mid: str | None = None


class MessagingEvent(msgspec.Struct, forbid_unknown_fields=False):
    sender: Participant | None = None
    recipient: Participant | None = None
    timestamp: int | None = None
    message: IncomingMessage | None = None
    postback: Postback | None = None

    @property
    def sender_id(self) -> str | None:
        if self.sender is None or not self.sender.id:
            return None
        return self.sender.id


class Entry(msgspec.Struct, forbid_unknown_fields=False):
    id: str | None = None
    time: int | None = None
    messaging: list[MessagingEvent] = msgspec.field(default_factory=list)


class WebhookBody(msgspec.Struct, forbid_unknown_fields=False):
    object: str | None = None
    entry: list[Entry] = msgspec.field(default_factory=list)


def parse_event(raw: MessagingEvent | dict[str, Any]) -> MessagingEvent:
    if isinstance(raw, MessagingEvent):
        return raw
    return msgspec.convert(raw, type=MessagingEvent)
