"""Handler registries and the per-event matching order.

For a message: the action bound to the quick-reply payload, then commands,
then patterns, then every generic ``message`` handler. For a postback: the
action bound to the payload, then every generic ``postback`` handler.
Actions, commands and patterns share one first-match chain; generic
handlers are observers and run whether or not something matched, unless
the dispatcher was built with ``generic_after_match=False``.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

from .logging import get_logger
from .middleware import resolve

if TYPE_CHECKING:
    from .context import Context

logger = get_logger(__name__)

__all__ = [
    "DispatchResult",
    "Dispatcher",
    "EVENT_TYPES",
    "Handler",
    "MatchOutcome",
    "Trigger",
]

EventType: TypeAlias = Literal["message", "postback"]
EVENT_TYPES: tuple[EventType, ...] = ("message", "postback")

Handler: TypeAlias = Callable[["Context"], Any]
Trigger: TypeAlias = str | re.Pattern[str]


class MatchOutcome(enum.Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    NO_TEXT = "no_text"


def _as_triggers(value: Trigger | Iterable[Trigger]) -> tuple[Trigger, ...]:
    if isinstance(value, (str, re.Pattern)):
        items: tuple[Any, ...] = (value,)
    else:
        items = tuple(value)
    for item in items:
        if not isinstance(item, (str, re.Pattern)):
            raise TypeError(f"trigger must be a str or compiled pattern, got {item!r}")
    if not items:
        raise ValueError("at least one trigger is required")
    return items


@dataclass(frozen=True, slots=True)
class _TextRoute:
    triggers: tuple[Trigger, ...]
    handler: Handler
    exact: bool

    def match(self, text: str | None) -> MatchOutcome:
        if not text:
            return MatchOutcome.NO_TEXT
        for trigger in self.triggers:
            if isinstance(trigger, str):
                hit = text == trigger if self.exact else trigger in text
            else:
                hit = trigger.search(text) is not None
            if hit:
                return MatchOutcome.MATCHED
        return MatchOutcome.NO_MATCH


@dataclass(slots=True)
class DispatchResult:
    kind: str | None
    matched: Literal["action", "command", "pattern"] | None = None
    generic_handlers: int = 0

    @property
    def handled(self) -> bool:
        return self.matched is not None or self.generic_handlers > 0


class Dispatcher:
    def __init__(self, *, generic_after_match: bool = True) -> None:
        self.generic_after_match = generic_after_match
        self._handlers: dict[str, list[Handler]] = {kind: [] for kind in EVENT_TYPES}
        self._commands: list[_TextRoute] = []
        self._patterns: list[_TextRoute] = []
        self._actions: dict[str, Handler] = {}

    def on(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers is None:
            logger.warning("dispatch.unknown_event", event_type=event)
            return
        handlers.append(handler)

    def command(self, triggers: Trigger | Iterable[Trigger], handler: Handler) -> None:
        """Match the full text exactly (strings) or by regex search."""
        self._commands.append(_TextRoute(_as_triggers(triggers), handler, exact=True))

    def hears(self, patterns: Trigger | Iterable[Trigger], handler: Handler) -> None:
        """Match a substring (strings) or by regex search."""
        self._patterns.append(_TextRoute(_as_triggers(patterns), handler, exact=False))

    def action(self, payloads: str | Iterable[str], handler: Handler) -> None:
        keys = (payloads,) if isinstance(payloads, str) else tuple(payloads)
        for key in keys:
            if key in self._actions:
                logger.debug("dispatch.action_replaced", payload=key)
            self._actions[key] = handler

    def on_photo(self, handler: Handler) -> None:
        self.on("message", _when(lambda ctx: bool(ctx.images), handler))

    def on_document(self, handler: Handler) -> None:
        self.on("message", _when(lambda ctx: bool(ctx.files), handler))

    def on_location(self, handler: Handler) -> None:
        self.on("message", _when(lambda ctx: ctx.has_attachment("location"), handler))

    def on_contact(self, handler: Handler) -> None:
        self.on("message", _when(lambda ctx: ctx.has_attachment("contact"), handler))

    def on_update(self, handler: Handler) -> None:
        for kind in EVENT_TYPES:
            self.on(kind, handler)

    def extend_context(self, extender: Handler) -> None:
        self.on("message", extender)

    async def dispatch(self, ctx: Context) -> DispatchResult:
        kind = ctx.kind
        result = DispatchResult(kind=kind)
        if kind is None:
            logger.debug("dispatch.unsupported_event", chat_id=ctx.chat_id)
            return result

        if await self._run_action(ctx):
            result.matched = "action"
        elif kind == "message":
            if await self._run_text_routes(ctx, self._commands, "command"):
                result.matched = "command"
            elif await self._run_text_routes(ctx, self._patterns, "pattern"):
                result.matched = "pattern"

        if result.matched is not None and not self.generic_after_match:
            return result

        for handler in tuple(self._handlers[kind]):
            await resolve(handler(ctx))
            result.generic_handlers += 1
        return result

    async def _run_action(self, ctx: Context) -> bool:
        payload = ctx.payload
        if payload is None:
            return False
        handler = self._actions.get(payload)
        if handler is None:
            return False
        logger.debug("dispatch.action_matched", chat_id=ctx.chat_id, payload=payload)
        await resolve(handler(ctx))
        return True

    async def _run_text_routes(
        self, ctx: Context, routes: list[_TextRoute], label: str
    ) -> bool:
        for route in tuple(routes):
            outcome = route.match(ctx.text)
            if outcome is MatchOutcome.NO_TEXT:
                return False
            if outcome is MatchOutcome.MATCHED:
                logger.debug(f"dispatch.{label}_matched", chat_id=ctx.chat_id, text=ctx.text)
                await resolve(route.handler(ctx))
                return True
        return False


def _when(predicate: Callable[[Context], bool], handler: Handler) -> Handler:
    async def _guarded(ctx: Context) -> None:
        if predicate(ctx):
            await resolve(handler(ctx))

    return _guarded
