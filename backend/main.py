import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from telegram.ext import Application

from agents.game_master import GameMaster
from config import BotConfig, Settings, settings
from routers.bot_router import register_handlers
from services.session_store import build_session_store
from services.telegram_transport import TelegramTransport

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


async def build_application(s: Settings) -> Application:
    """Create, initialise and wire the Telegram application. Caller starts it."""
    # Concurrent updates: per-chat leases serialise a chat, nothing else should
    application = Application.builder().token(s.telegram_bot_token).concurrent_updates(True).build()
    await application.initialize()
    bot_config = BotConfig.from_settings(s, username=application.bot.username)
    game_master = GameMaster(
        store=build_session_store(s),
        transport=TelegramTransport(application.bot, bot_config),
        config=bot_config,
    )
    register_handlers(application, game_master, bot_config)
    return application


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Odd-one-out bot starting up...")
    application = await build_application(settings)
    await application.start()
    if settings.telegram_webhook_url:
        await application.bot.set_webhook(
            url=settings.telegram_webhook_url,
            secret_token=settings.telegram_webhook_secret or None,
        )
        logger.info("Webhook set to %s", settings.telegram_webhook_url)
    else:
        await application.updater.start_polling()
        logger.info("Long polling for updates")
    app.state.telegram_app = application
    yield
    if application.updater and application.updater.running:
        await application.updater.stop()
    await application.stop()
    await application.shutdown()
    logger.info("Bot shutting down.")


app = FastAPI(
    title="Odd One Out",
    version="0.1.0",
    description="Telegram word game: everyone gets the secret word except the odd one out",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "odd-one-out", "version": "0.1.0"}


from routers.webhook_router import router as webhook_router

app.include_router(webhook_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
