from __future__ import annotations

import secrets
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
import msgspec
import structlog

from .client import MessengerClient, SendClient
from .config import DEFAULT_API_VERSION, DEFAULT_HOST, DEFAULT_PORT, BotConfig, ConfigError
from .context import Context
from .dispatch import Dispatcher, DispatchResult, Handler, Trigger
from .logging import get_logger
from .markup import Reply
from .middleware import ErrorHandler, Middleware, MiddlewareChain
from .model import MessagingEvent, WebhookBody, parse_event
from .sessions import (
    MemorySessionStore,
    SessionStore,
    load_session,
    open_session_store,
    resolve_session_id,
    save_session,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = get_logger(__name__)

__all__ = ["MessengerBot"]

HTTP_OK = 200
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404


@dataclass(slots=True)
class _LockEntry:
    lock: anyio.Lock = field(default_factory=anyio.Lock)
    holders: int = 0


class _UserLocks:
    """One lock per sender, dropped when nobody is waiting on it."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = _LockEntry()
            self._entries[key] = entry
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(key, None)


class MessengerBot:
    """Entry point tying the middleware chain, dispatcher and sessions together.

    ``handle_webhook`` takes one webhook delivery and returns the HTTP status
    to acknowledge it with; ``handle_event`` processes a single messaging
    event. Register handlers with ``on``, ``command``, ``hears`` and
    ``action``; add interceptors with ``use``; set the error handler with
    ``catch``.
    """

    def __init__(
        self,
        *,
        access_token: str,
        verify_token: str,
        app_secret: str,
        api_version: str = DEFAULT_API_VERSION,
        session_store: SessionStore | None = None,
        error_handler: ErrorHandler | None = None,
        client: SendClient | None = None,
        generic_after_match: bool = True,
        serialize_users: bool = True,
    ) -> None:
        if not access_token or not verify_token or not app_secret:
            raise ConfigError(
                "MessengerBot requires access_token, verify_token, and app_secret"
            )
        self.access_token = access_token
        self.verify_token = verify_token
        self.app_secret = app_secret
        self.api_version = api_version
        self.session_store: SessionStore = (
            session_store if session_store is not None else MemorySessionStore()
        )
        self.client: SendClient = (
            client
            if client is not None
            else MessengerClient(access_token, api_version=api_version)
        )
        self.dispatcher = Dispatcher(generic_after_match=generic_after_match)
        self.middlewares = MiddlewareChain(error_handler)
        self.serialize_users = serialize_users
        self._user_locks = _UserLocks()

    @classmethod
    def from_config(cls, config: BotConfig, **kwargs: Any) -> MessengerBot:
        kwargs.setdefault(
            "session_store", open_session_store(config.session_kind, config.session_path)
        )
        return cls(
            access_token=config.access_token,
            verify_token=config.verify_token,
            app_secret=config.app_secret,
            api_version=config.api_version,
            **kwargs,
        )

    @property
    def error_handler(self) -> ErrorHandler | None:
        return self.middlewares.error_handler

    def catch(self, handler: ErrorHandler) -> None:
        self.middlewares.error_handler = handler

    use_error_handler = catch

    def use(self, middleware: Middleware) -> None:
        self.middlewares.use(middleware)

    def on(self, event: str, handler: Handler) -> None:
        self.dispatcher.on(event, handler)

    def command(self, triggers: Trigger | Iterable[Trigger], handler: Handler) -> None:
        self.dispatcher.command(triggers, handler)

    def hears(self, patterns: Trigger | Iterable[Trigger], handler: Handler) -> None:
        self.dispatcher.hears(patterns, handler)

    def action(self, payloads: str | Iterable[str], handler: Handler) -> None:
        self.dispatcher.action(payloads, handler)

    def on_photo(self, handler: Handler) -> None:
        self.dispatcher.on_photo(handler)

    def on_document(self, handler: Handler) -> None:
        self.dispatcher.on_document(handler)

    def on_location(self, handler: Handler) -> None:
        self.dispatcher.on_location(handler)

    def on_contact(self, handler: Handler) -> None:
        self.dispatcher.on_contact(handler)

    def on_update(self, handler: Handler) -> None:
        self.dispatcher.on_update(handler)

    def extend_context(self, extender: Handler) -> None:
        self.dispatcher.extend_context(extender)

    async def send_message(
        self, recipient_id: str, message: str | Reply | dict[str, Any]
    ) -> dict[str, Any] | None:
        try:
            return await self.client.send_message(recipient_id, message)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "bot.send_failed",
                recipient_id=recipient_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

    async def handle_event(
        self,
        event: MessagingEvent | dict[str, Any],
        raw: dict[str, Any] | None = None,
    ) -> DispatchResult | None:
        """Run one messaging event through the chain and the dispatcher.

        Returns the dispatch result, or ``None`` when a middleware stopped
        the event before dispatch. Errors not taken by the error handler
        propagate to the caller.
        """
        if isinstance(event, dict) and raw is None:
            raw = event
        ctx = Context(self, parse_event(event), raw)
        session_id = resolve_session_id(ctx)
        with structlog.contextvars.bound_contextvars(chat_id=ctx.chat_id):
            if not self.serialize_users:
                return await self._process(ctx, session_id)
            async with self._user_locks.hold(session_id):
                return await self._process(ctx, session_id)

    async def _process(self, ctx: Context, session_id: str) -> DispatchResult | None:
        logger.info("bot.event_received", kind=ctx.kind, payload=ctx.payload)
        await load_session(ctx, self.session_store)
        result: DispatchResult | None = None

        async def _dispatch(ctx: Context) -> None:
            nonlocal result
            result = await self.dispatcher.dispatch(ctx)

        try:
            await self.middlewares.run(ctx, _dispatch)
        finally:
            await save_session(self.session_store, session_id, ctx.session)
        return result

    async def handle_webhook(self, body: dict[str, Any] | bytes | str) -> int:
        if isinstance(body, (bytes, str)):
            try:
                body = msgspec.json.decode(body)
            except msgspec.DecodeError:
                logger.warning("bot.webhook_malformed")
                return HTTP_NOT_FOUND
        if not isinstance(body, dict) or body.get("object") != "page":
            logger.warning(
                "bot.webhook_unexpected",
                object=body.get("object") if isinstance(body, dict) else None,
            )
            return HTTP_NOT_FOUND
        try:
            container = msgspec.convert(body, type=WebhookBody)
        except msgspec.ValidationError as exc:
            logger.warning("bot.webhook_invalid", error=str(exc))
            return HTTP_NOT_FOUND

        for raw_entry, entry in zip(body.get("entry") or [], container.entry):
            for raw_event, event in zip(raw_entry.get("messaging") or [], entry.messaging):
                if event.sender_id is None:
                    logger.debug("bot.event_skipped", entry=entry.id)
                    continue
                try:
                    await self.handle_event(event, raw_event)
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "bot.event_failed",
                        chat_id=event.sender_id,
                        error=str(exc),
                        error_type=exc.__class__.__name__,
                        exc_info=True,
                    )
        return HTTP_OK

    def verify_webhook(
        self, mode: str | None, token: str | None, challenge: str | None
    ) -> tuple[int, str]:
        if mode == "subscribe" and token and secrets.compare_digest(
            token.encode("utf-8"), self.verify_token.encode("utf-8")
        ):
            logger.info("bot.webhook_verified")
            return HTTP_OK, challenge or ""
        logger.warning("bot.webhook_verification_failed", mode=mode)
        return HTTP_FORBIDDEN, ""

    def create_app(self) -> FastAPI:
        from .server import create_app

        return create_app(self)

    def start(self, port: int = DEFAULT_PORT, host: str = DEFAULT_HOST) -> None:
        import uvicorn

        logger.info("bot.starting", host=host, port=port)
        uvicorn.run(self.create_app(), host=host, port=port, log_config=None)

    async def close(self) -> None:
        await self.client.close()
