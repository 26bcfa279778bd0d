from contextlib import asynccontextmanager
import asyncio
import logging

import discord
from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tvcast.config import settings, setup_logging
from tvcast.database import close_db, init_db
from tvcast.services.cache_store import CacheStore, resolve_cache_root
from tvcast.services.fetcher import Fetcher
from tvcast.services.refresh_service import RefreshService
from tvcast.services.scheduler_service import RefreshScheduler
from tvcast.streaming.discord_transport import DiscordVoiceTransport
from tvcast.streaming.session_manager import SessionManager

from tvcast.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


def _create_discord_client() -> discord.Client:
    intents = discord.Intents.default()
    intents.voice_states = True
    intents.members = True
    return discord.Client(intents=intents)


async def _run_discord_client(client: discord.Client) -> None:
    try:
        await client.start(settings.discord_bot_token)
    except discord.LoginFailure as e:
        logger.error(f"Discord login failed: {e}")
    except discord.DiscordException as e:
        logger.error(f"Discord client stopped: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("="*60)
    logger.info("Starting tvcast...")
    logger.info("="*60)

    discord_client: discord.Client | None = None
    discord_task: asyncio.Task | None = None
    app.state.session_manager = None

    try:
        settings.ensure_sources()

        logger.info("Initializing database...")
        await init_db()

        cache = CacheStore(resolve_cache_root(settings.ram_cache, settings.cache_dir))
        refresh_service = RefreshService(Fetcher(cache), cache)
        scheduler = RefreshScheduler(refresh_service)
        app.state.refresh_service = refresh_service
        app.state.scheduler = scheduler

        logger.info("Running initial refresh...")
        await refresh_service.initial_refresh()

        logger.info("Starting scheduler...")
        scheduler.configure()

        if settings.discord_bot_token:
            logger.info("Starting Discord client...")
            discord_client = _create_discord_client()
            discord_task = asyncio.create_task(_run_discord_client(discord_client), name="discord-client")
            transport = DiscordVoiceTransport(discord_client, settings.discord_guild_id)
            app.state.session_manager = SessionManager(transport)
        else:
            logger.warning("DISCORD_BOT_TOKEN not configured - streaming disabled")

        logger.info("="*60)
        logger.info("tvcast started successfully")
        logger.info("="*60)
    except Exception as e:
        logger.error("="*60)
        logger.error(f"Failed to start tvcast: {e}", exc_info=True)
        logger.error("="*60)
        raise

    yield

    logger.info("="*60)
    logger.info("Shutting down tvcast...")
    logger.info("="*60)

    session_manager: SessionManager | None = app.state.session_manager
    if session_manager is not None:
        try:
            await session_manager.shutdown()
        except Exception as e:
            logger.error(f"Error while leaving voice: {e}", exc_info=True)

    try:
        app.state.scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    if discord_client is not None:
        await discord_client.close()
        if discord_task is not None:
            await asyncio.gather(discord_task, return_exceptions=True)
        logger.info("Discord client closed")

    await close_db()

    logger.info("="*60)
    logger.info("tvcast stopped")
    logger.info("="*60)


app = FastAPI(
    title="tvcast",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
