"""Reply payload builders.

Builders return one of four reply variants. `render_message` is the single
place that turns a variant into the Send API ``message`` object.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

__all__ = [
    "ButtonTemplate",
    "Markup",
    "PostbackButton",
    "QuickReplies",
    "QuickReplyOption",
    "RawAttachment",
    "Reply",
    "TextOnly",
    "UrlButton",
    "render_message",
]


@dataclass(frozen=True, slots=True)
class PostbackButton:
    title: str
    payload: str


@dataclass(frozen=True, slots=True)
class UrlButton:
    title: str
    url: str


Button: TypeAlias = PostbackButton | UrlButton


@dataclass(frozen=True, slots=True)
class QuickReplyOption:
    title: str
    payload: str


@dataclass(frozen=True, slots=True)
class TextOnly:
    text: str


@dataclass(frozen=True, slots=True)
class QuickReplies:
    options: tuple[QuickReplyOption, ...]
    text: str | None = None


@dataclass(frozen=True, slots=True)
class ButtonTemplate:
    buttons: tuple[Button, ...]
    text: str | None = None


@dataclass(frozen=True, slots=True)
class RawAttachment:
    attachment: dict[str, Any]


Reply: TypeAlias = TextOnly | QuickReplies | ButtonTemplate | RawAttachment


def _media(kind: str, url: str) -> RawAttachment:
    return RawAttachment(attachment={"type": kind, "payload": {"url": url}})


def _quick_reply_option(item: QuickReplyOption | PostbackButton | str) -> QuickReplyOption:
    if isinstance(item, QuickReplyOption):
        return item
    if isinstance(item, PostbackButton):
        return QuickReplyOption(title=item.title, payload=item.payload)
    return QuickReplyOption(title=item, payload=item)


class Markup:
    """Builders for keyboards, buttons and media replies."""

    @staticmethod
    def url_button(text: str, url: str) -> UrlButton:
        return UrlButton(title=text, url=url)

    @staticmethod
    def button(text: str, payload: str | None = None) -> PostbackButton:
        return PostbackButton(title=text, payload=payload or text)

    @staticmethod
    def keyboard(
        rows: Iterable[Sequence[PostbackButton | str]], text: str | None = None
    ) -> QuickReplies:
        """Flatten rows of buttons into Messenger quick replies."""
        options = tuple(_quick_reply_option(item) for row in rows for item in row)
        return QuickReplies(options=options, text=text)

    @staticmethod
    def keyboard_reply(options: Iterable[str], text: str | None = None) -> QuickReplies:
        return QuickReplies(
            options=tuple(_quick_reply_option(option) for option in options),
            text=text,
        )

    @staticmethod
    def inline_keyboard(
        buttons: Iterable[Button | str], text: str | None = None
    ) -> ButtonTemplate:
        normalized: list[Button] = []
        for item in buttons:
            if isinstance(item, str):
                item = PostbackButton(title=item, payload=item)
            normalized.append(item)
        return ButtonTemplate(buttons=tuple(normalized), text=text)

    @staticmethod
    def photo(url: str) -> RawAttachment:
        return _media("image", url)

    @staticmethod
    def document(url: str) -> RawAttachment:
        return _media("file", url)

    @staticmethod
    def audio(url: str) -> RawAttachment:
        return _media("audio", url)

    @staticmethod
    def video(url: str) -> RawAttachment:
        return _media("video", url)


def _render_button(button: Button) -> dict[str, Any]:
    match button:
        case UrlButton(title=title, url=url):
            return {"type": "web_url", "title": title, "url": url}
        case PostbackButton(title=title, payload=payload):
            return {"type": "postback", "title": title, "payload": payload}
    raise TypeError(f"unsupported button {button!r}")


def _render_reply(reply: Reply, text: str | None) -> dict[str, Any]:
    match reply:
        case TextOnly(text=own_text):
            return {"text": text if text is not None else own_text}
        case QuickReplies(options=options, text=own_text):
            return {
                "text": text if text is not None else own_text,
                "quick_replies": [
                    {"content_type": "text", "title": opt.title, "payload": opt.payload}
                    for opt in options
                ],
            }
        case ButtonTemplate(buttons=buttons, text=own_text):
            return {
                "attachment": {
                    "type": "template",
                    "payload": {
                        "template_type": "button",
                        "text": text if text is not None else own_text,
                        "buttons": [_render_button(button) for button in buttons],
                    },
                }
            }
        case RawAttachment(attachment=attachment):
            return {"attachment": attachment}
    raise TypeError(f"unsupported reply {reply!r}")


def render_message(
    content: str | Reply | dict[str, Any], markup: Reply | None = None
) -> dict[str, Any]:
    """Build the Send API ``message`` object for a reply.

    ``content`` is the message text, a reply variant, or an already rendered
    message dict. When ``markup`` is given the text is carried into it.
    """
    if markup is not None:
        text = content if isinstance(content, str) else None
        return _render_reply(markup, text)
    if isinstance(content, str):
        return {"text": content}
    if isinstance(content, dict):
        return content
    return _render_reply(content, None)
