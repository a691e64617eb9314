# bot/run_bot.py
import asyncio
import logging

from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import TelegramAPIServer
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from code_arena.config import Settings
from code_arena.bot.middlewares.user import UserMiddleware
from code_arena.bot.routers.core import router as CoreRouter
from code_arena.bot.routers.contests import router as ContestRouter
from code_arena.bot.routers.submissions import router as SubmissionRouter
from code_arena.bot.routers.leaderboard import router as LeaderboardRouter
from code_arena.bot.services.leaderboard_watch import leaderboard_watch
from code_arena.db.database import DataBase
from code_arena.services.submission import SubmissionService

logger = logging.getLogger(__name__)


def setup_dispatcher(dp: Dispatcher) -> None:
    dp.update.outer_middleware(UserMiddleware())

def setup_routers(dp: Dispatcher) -> None:
    dp.include_router(CoreRouter)
    dp.include_router(ContestRouter)
    dp.include_router(SubmissionRouter)
    dp.include_router(LeaderboardRouter)

async def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level)
    BOT_TOKEN = settings.bot_token

    if not BOT_TOKEN:
        raise RuntimeError("Bot token is not set.")

    session = None
    if settings.telegram_api_url:
        session = AiohttpSession(api=TelegramAPIServer.from_base(settings.telegram_api_url, is_local=True))
    bot = Bot(
        BOT_TOKEN,
        session=session,
        default=DefaultBotProperties(
            parse_mode=ParseMode.HTML,
        ),
    )

    dp = Dispatcher()
    setup_dispatcher(dp)
    setup_routers(dp)

    leaderboard_watch.bind_bot(bot)

    await DataBase().create_all()

    submissions = SubmissionService()
    resumed = await submissions.pipeline.resume_pending()
    logger.info("Bot starting; %d pending submissions resumed", resumed)

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await submissions.pipeline.drain()
        await submissions.pipeline.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
