"""FastAPI entry point: health, conversation history and the Telegram webhook."""

from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from telegram import Update
from telegram.ext import Application

from .service import ChatService

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/telegram"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


class HistoryResponse(BaseModel):
    user_id: int
    model_key: str
    model_id: str
    messages: list[dict] = Field(default_factory=list)
    updated_at: float


def create_app(
    service: ChatService,
    *,
    application: Optional[Application] = None,
    on_started: Optional[Callable[[], None]] = None,
) -> FastAPI:
    """Create the HTTP app; with ``application`` it also serves the Telegram webhook.

    ``on_started`` is called once the Telegram application has started.
    """
    config = service.config

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if application is None:
            yield
            return
        async with application:
            if config.webhook_url:
                await application.bot.set_webhook(
                    url=config.webhook_url.rstrip("/") + WEBHOOK_PATH,
                    secret_token=config.webhook_secret,
                    allowed_updates=Update.ALL_TYPES,
                )
                logger.info("Registered Telegram webhook at %s", config.webhook_url)
            await application.start()
            if on_started is not None:
                on_started()
            try:
                yield
            finally:
                await application.stop()

    app = FastAPI(title="Stream Relay", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.state.application = application

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/history/{user_id}", response_model=HistoryResponse)
    async def history(user_id: int):
        try:
            payload = app.state.service.store.snapshot(user_id)
        except ValueError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return payload

    if application is not None:

        @app.post(WEBHOOK_PATH)
        async def telegram_webhook(request: Request) -> Dict[str, Any]:
            if config.webhook_secret and request.headers.get(SECRET_HEADER) != config.webhook_secret:
                raise HTTPException(status_code=403, detail="invalid secret token")
            try:
                payload = await request.json()
            except ValueError as exc:
                raise HTTPException(status_code=400, detail="invalid JSON body") from exc
            update = Update.de_json(payload, application.bot)
            await application.update_queue.put(update)
            return {"ok": True}

    return app
