from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from .markup import Markup, Reply, render_message
from .model import Attachment, MessagingEvent, Session

if TYPE_CHECKING:
    from .scenes import Scene
    from .sessions import SessionStore

__all__ = ["Context", "MessageSender"]

FILE_ATTACHMENT_TYPES = frozenset({"file", "audio", "video"})


class MessageSender(Protocol):
    async def send_message(
        self, recipient_id: str, message: str | Reply | dict[str, Any]
    ) -> dict[str, Any] | None: ...


class Context:
    """Everything a middleware or handler knows about one inbound event.

    A context is built for a single event and dropped once that event has
    been processed. ``session`` is the live session object, shared with the
    store and any active scene rather than copied.
    """

    def __init__(
        self,
        bot: MessageSender,
        event: MessagingEvent,
        raw: dict[str, Any] | None = None,
    ) -> None:
        self.bot = bot
        self.event = event
        self.raw = raw
        self.chat_id: str | None = event.sender_id
        message = event.message
        self.text: str | None = message.text if message is not None else None
        self.attachments: list[Attachment] = (
            list(message.attachments) if message is not None else []
        )
        self.images = [a for a in self.attachments if a.type == "image"]
        self.files = [a for a in self.attachments if a.type in FILE_ATTACHMENT_TYPES]
        self.pdfs = [
            a
            for a in self.attachments
            if a.type == "file" and (a.url or "").lower().endswith(".pdf")
        ]
        self.session: Session = {}
        self.session_store: SessionStore | None = None
        self.scene: Scene | None = None
        self.scene_stopped = False
        self.state: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"Context(chat_id={self.chat_id!r}, kind={self.kind!r}, text={self.text!r})"

    @property
    def kind(self) -> str | None:
        if self.event.message is not None:
            return "message"
        if self.event.postback is not None:
            return "postback"
        return None

    @property
    def payload(self) -> str | None:
        """Postback payload, or the quick-reply payload of a message."""
        if self.event.postback is not None:
            return self.event.postback.payload
        message = self.event.message
        if message is not None and message.quick_reply is not None:
            return message.quick_reply.payload
        return None

    def has_attachment(self, kind: str) -> bool:
        return any(a.type == kind for a in self.attachments)

    def extend(self, key: str, value: Any) -> None:
        self.state[key] = value

    def __getattr__(self, name: str) -> Any:
        state = self.__dict__.get("state")
        if state is not None and name in state:
            return state[name]
        raise AttributeError(name)

    async def reply(
        self, content: str | Reply | dict[str, Any], markup: Reply | None = None
    ) -> dict[str, Any] | None:
        if self.chat_id is None:
            raise RuntimeError("cannot reply to an event without a sender")
        return await self.bot.send_message(self.chat_id, render_message(content, markup))

    async def reply_with_photo(self, url: str) -> dict[str, Any] | None:
        return await self.reply(Markup.photo(url))

    async def reply_with_document(self, url: str) -> dict[str, Any] | None:
        return await self.reply(Markup.document(url))

    async def reply_with_audio(self, url: str) -> dict[str, Any] | None:
        return await self.reply(Markup.audio(url))

    async def reply_with_video(self, url: str) -> dict[str, Any] | None:
        return await self.reply(Markup.video(url))
