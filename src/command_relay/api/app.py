"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from command_relay.api.admin import router as admin_router
from command_relay.app_logging import configure_logging
from command_relay.channels.telegram import TelegramChannel
from command_relay.containers import AppContainer
from command_relay.domain.relay import RelayResult, RelayStage


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        telegram = app.state.container.channels.get("telegram")
        if isinstance(telegram, TelegramChannel):
            try:
                settings = app.state.container.settings
                await telegram.sync_bot(settings.telegram_webhook_url)
            except Exception:
                logger.exception("Failed to sync Telegram bot settings")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/webhook/{channel}")
    async def webhook_challenge(channel: str, challenge: str | None = None) -> dict:
        """Echo a URL ownership challenge."""
        if challenge is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Challenge not provided",
            )
        logger.info("Webhook verification", extra={"channel": channel})
        return {"challenge": challenge}

    @app.post("/webhook/{channel}")
    async def webhook(channel: str, request: Request) -> JSONResponse:
        """Authenticate an inbound event and relay its command."""
        state_container: AppContainer = request.app.state.container
        raw_body = await request.body()
        result = await state_container.relay_service.handle_inbound(
            channel, raw_body, request.headers
        )
        if result.stage == RelayStage.CHALLENGE:
            return JSONResponse({"challenge": result.challenge})
        if result.event is not None:
            await _acknowledge(state_container, result)
        status_code = (
            status.HTTP_401_UNAUTHORIZED
            if result.reason == "AuthenticationError"
            else status.HTTP_200_OK
        )
        return JSONResponse(result.as_payload(), status_code=status_code)

    async def _acknowledge(state_container: AppContainer, result: RelayResult) -> None:
        event = result.event
        if event is None:
            return
        adapter = state_container.channels.get(event.channel)
        if adapter is None:
            return
        try:
            await adapter.acknowledge(event, result)
        except Exception:
            logger.exception(
                "Failed to send acknowledgment", extra={"channel": event.channel}
            )

    return app
