from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeAlias

from .logging import get_logger

if TYPE_CHECKING:
    from .context import Context

logger = get_logger(__name__)

__all__ = [
    "ErrorHandler",
    "Middleware",
    "MiddlewareChain",
    "Proceed",
    "logger_middleware",
    "resolve",
]

Proceed: TypeAlias = Callable[[], Awaitable[None]]
Middleware: TypeAlias = Callable[["Context", Proceed], Awaitable[None]]
ErrorHandler: TypeAlias = Callable[[Exception, "Context"], Any]
Terminal: TypeAlias = Callable[["Context"], Awaitable[Any]]


async def resolve(value: Any) -> Any:
    """Await ``value`` when a handler returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class MiddlewareChain:
    """Ordered interceptors run once per event.

    Each middleware receives the context and a ``proceed`` continuation
    that runs the rest of the chain and finally the terminal stage. Not
    calling ``proceed`` stops processing of the event. Continuations for
    stages that already ran are no-ops.
    """

    def __init__(self, error_handler: ErrorHandler | None = None) -> None:
        self._middlewares: list[Middleware] = []
        self.error_handler = error_handler

    def __len__(self) -> int:
        return len(self._middlewares)

    def use(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    async def run(self, ctx: Context, terminal: Terminal | None = None) -> None:
        middlewares = tuple(self._middlewares)
        index = -1
        handler_failed = False

        async def _run_stage(i: int) -> None:
            nonlocal index, handler_failed
            if i <= index:
                return
            index = i
            try:
                if i < len(middlewares):
                    await resolve(middlewares[i](ctx, lambda: _run_stage(i + 1)))
                elif terminal is not None:
                    await terminal(ctx)
            except Exception as exc:
                if self.error_handler is None or handler_failed:
                    raise
                logger.debug(
                    "middleware.error_routed",
                    stage=i,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                try:
                    await resolve(self.error_handler(exc, ctx))
                except Exception:
                    handler_failed = True
                    raise

        await _run_stage(0)


def logger_middleware() -> Middleware:
    async def _middleware(ctx: Context, proceed: Proceed) -> None:
        logger.info(
            "middleware.event",
            chat_id=ctx.chat_id,
            kind=ctx.kind,
            text=ctx.text,
            payload=ctx.payload,
        )
        await proceed()

    return _middleware
