"""
Kakuli Bot
Discord bot that tracks voice-channel time, plays the owner's join/leave cues,
streams audio, keeps deleted messages for review and times out spammers
"""

import asyncio
import logging
import threading

import discord
import uvicorn
from discord.ext import commands
from dotenv import load_dotenv
from fastapi import FastAPI

from controllers.bot_controller import bot_controller, bot_router
from controllers.command_controller import CommandController
from controllers.message_controller import MessageController
from controllers.voice_controller import VoiceController
from services.accrual_store import AccrualStore
from services.audio_service import AudioService
from services.image_service import ImageService
from services.presence_tracker import PresenceTracker
from services.sound_service import SoundService
from services.spam_guard import RateLimitConfig, SpamGuard
from services.store import JsonFileStore
from services.voice_time_service import VoiceTimeService
from utils.settings import BotSettings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("kakuli-bot")

# Services closed on shutdown
voice_time_service: VoiceTimeService = None
image_service: ImageService = None


def create_discord_bot(settings: BotSettings, store: JsonFileStore) -> commands.Bot:
    """Create a bot instance with every service and controller wired in"""
    global voice_time_service, image_service

    intents = discord.Intents.default()
    intents.message_content = True
    intents.voice_states = True
    intents.members = True

    bot = commands.Bot(
        command_prefix=settings.command_prefix,
        intents=intents,
        description='Kakuli - voice time tracking and cues'
    )

    tracker = PresenceTracker()
    accrual_store = AccrualStore(store)
    voice_time_service = VoiceTimeService(tracker, accrual_store, settings.default_report_channel_id)
    audio_service = AudioService(settings.sounds_dir, settings.cue_idle_timeout_seconds)
    image_service = ImageService(settings.gemini_api_key)
    spam_guard = SpamGuard(RateLimitConfig(
        max_messages_per_second=settings.spam_messages_per_second,
        burst_limit=settings.spam_burst_limit,
        timeout_minutes=settings.spam_timeout_minutes,
    ))

    voice_controller = VoiceController(bot, voice_time_service, audio_service, settings.owner_id)
    MessageController(bot, accrual_store, spam_guard)
    CommandController(
        bot,
        voice_time_service,
        accrual_store,
        audio_service,
        image_service,
        SoundService(settings.sounds_dir),
        settings.owner_id,
    )
    bot_controller.set_references(bot, tracker, audio_service)

    report_task = None

    @bot.event
    async def on_ready():
        """Bot is ready and connected to Discord"""
        nonlocal report_task
        logger.info(f"Bot logged in as {bot.user} ({bot.user.id})")

        # on_ready fires again after reconnects; open sessions survive those
        await voice_controller.restore_sessions()

        if report_task is None:
            report_task = asyncio.create_task(
                voice_time_service.run_periodic_reports(bot, settings.report_interval_seconds)
            )

    return bot


# Health check endpoint
app = FastAPI(
    title="Kakuli Bot Health",
    description="Health check endpoint for the Discord bot"
)
app.include_router(bot_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    status = bot_controller.get_status()
    return {
        "status": "healthy",
        "service": "kakuli-bot",
        "bot_ready": status["bot_ready"],
        "open_voice_sessions": status["open_voice_sessions"],
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint"""
    return {
        "status": "ready" if bot_controller.is_ready() else "starting",
        "bot_ready": bot_controller.is_ready(),
    }


async def shutdown():
    """Graceful shutdown"""
    if voice_time_service:
        voice_time_service.stop()
    if image_service:
        await image_service.close()


def run_health_server(port: int):
    """Run the health check server on a separate thread"""
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")


async def main():
    """Main entry point"""
    load_dotenv()
    settings = BotSettings.from_env()

    if not settings.discord_token:
        logger.error("DISCORD_TOKEN not set - cannot start")
        return

    store = JsonFileStore(settings.store_path)
    await store.load()

    health_thread = threading.Thread(target=run_health_server, args=(settings.port,), daemon=True)
    health_thread.start()

    bot = create_discord_bot(settings, store)
    logger.info("Starting Kakuli bot...")
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        await shutdown()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
