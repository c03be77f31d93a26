import asyncio
import logging
import sys
from datetime import timedelta

from aiohttp import web
from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from pydantic import ValidationError

from config import get_settings
from database.db import init_db, make_engine, make_sessionmaker
from handlers import telegram
from handlers.dispatch import MessageDispatcher
from services.messenger import Messenger
from services.openai_service import OpenAIService
from services.scheduler import CoachScheduler

logger = logging.getLogger(__name__)

async def health_check(request):
    return web.Response(text="Nightlock is running!")

def build_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", health_check)
    return app

async def start_web_server(app: web.Application, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info(f"🌍 Web server running on port {port}")
    return runner

async def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout
    )

    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration. Check environment variables.\n{e}")
        return 1
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())

    logger.info("🚀 Starting Nightlock...")

    engine = make_engine(settings.DB_PATH)
    try:
        await init_db(engine)
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        return 1
    session_factory = make_sessionmaker(engine)

    bot = Bot(token=settings.BOT_TOKEN.get_secret_value())
    messenger = Messenger(bot)
    llm = OpenAIService(
        api_key=settings.OPENAI_API_KEY.get_secret_value(),
        model=settings.OPENAI_MODEL,
        intent_model=settings.OPENAI_INTENT_MODEL,
    )
    scheduler = CoachScheduler(session_factory, messenger, llm)
    coach = MessageDispatcher(
        session_factory,
        messenger,
        llm,
        scheduler=scheduler,
        session_ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES),
        default_timezone=settings.DEFAULT_TIMEZONE,
    )

    dp = Dispatcher()
    dp["coach"] = coach
    dp.include_router(telegram.router)

    await scheduler.start()
    app = build_app()
    runner = None

    try:
        if settings.WEBHOOK_URL:
            SimpleRequestHandler(dispatcher=dp, bot=bot).register(app, path=settings.WEBHOOK_PATH)
            setup_application(app, dp, bot=bot)
            await bot.set_webhook(settings.WEBHOOK_URL.rstrip("/") + settings.WEBHOOK_PATH)
            runner = await start_web_server(app, settings.PORT)
            logger.info(f"📡 Webhook mode at {settings.WEBHOOK_PATH}")
            await asyncio.Event().wait()
        else:
            runner = await start_web_server(app, settings.PORT)
            logger.info("📡 Polling started...")
            await dp.start_polling(bot)
    finally:
        await scheduler.shutdown()
        if runner is not None:
            await runner.cleanup()
        await bot.session.close()
        await engine.dispose()

    return 0

if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Bot stopped!")
