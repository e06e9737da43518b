import asyncio
import logging
import signal

import aiohttp
from aiohttp import web

from config import Settings, load_settings
from domain.repositories import IdentityRepository
from infrastructure.db.identity_repository_postgres import PostgresIdentityRepository
from infrastructure.db.identity_repository_sqlite import SqliteIdentityRepository
from infrastructure.notifications.discord_webhook import DiscordWebhookDispatcher
from interfaces.discord.handlers import create_discord_bot
from interfaces.http.webhook_server import create_webhook_app

logger = logging.getLogger("civ_relay")


def build_identity_repository(settings: Settings) -> IdentityRepository:
    if settings.db_backend == "sqlite":
        return SqliteIdentityRepository(settings.db_path)
    return PostgresIdentityRepository.from_params(settings.db_params)


def _install_shutdown_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still
            # raises KeyboardInterrupt.
            pass


async def run(settings: Settings) -> None:
    logger.info("Connecting to database (%s)...", settings.db_backend)
    identity_repo = build_identity_repository(settings)

    stop = asyncio.Event()
    _install_shutdown_handlers(stop)

    async with aiohttp.ClientSession() as session:
        dispatcher = DiscordWebhookDispatcher.from_url(
            settings.webhook_url, session, username=settings.webhook_username
        )

        app = create_webhook_app(identity_repo, dispatcher)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, settings.server_host, settings.server_port)
        await site.start()
        logger.info(
            "Serving webhooks on %s:%d", settings.server_host, settings.server_port
        )

        bot = create_discord_bot(identity_repo)
        logger.info("Starting Discord client...")
        bot_task = asyncio.create_task(bot.start(settings.discord_token))
        stop_task = asyncio.create_task(stop.wait())

        try:
            done, _ = await asyncio.wait(
                {bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if bot_task in done:
                # Surface login or gateway failures.
                bot_task.result()
        finally:
            logger.info("Shutting down...")
            stop_task.cancel()
            await runner.cleanup()
            await bot.close()
            if not bot_task.done():
                await bot_task
            if isinstance(identity_repo, PostgresIdentityRepository):
                identity_repo.close()


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting up...")
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
