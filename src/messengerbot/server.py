"""HTTP transport: webhook verification and event delivery endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse

from . import __version__
from .logging import get_logger

if TYPE_CHECKING:
    from .bot import MessengerBot

logger = get_logger(__name__)

WEBHOOK_PATH = "/webhook"


def create_app(bot: MessengerBot, *, path: str = WEBHOOK_PATH) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("server.shutdown")
        await bot.close()

    app = FastAPI(title="messengerbot", version=__version__, lifespan=lifespan)
    app.state.bot = bot

    @app.get(path, response_class=PlainTextResponse)
    async def verify_webhook(
        hub_mode: str | None = Query(default=None, alias="hub.mode"),
        hub_verify_token: str | None = Query(default=None, alias="hub.verify_token"),
        hub_challenge: str | None = Query(default=None, alias="hub.challenge"),
    ) -> Response:
        status, body = bot.verify_webhook(hub_mode, hub_verify_token, hub_challenge)
        return PlainTextResponse(body, status_code=status)

    @app.post(path)
    async def receive_webhook(request: Request) -> Response:
        body = await request.body()
        status = await bot.handle_webhook(body)
        return Response(status_code=status)

    return app
