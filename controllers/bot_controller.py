"""
Bot Controller
Read-only status API for the running bot
"""

import logging

from fastapi import APIRouter

logger = logging.getLogger("kakuli-bot")

# APIRouter for bot status endpoints
bot_router = APIRouter(
    prefix="/api/bot",
    tags=["Bot Status"]
)


class BotController:
    """Holds references to the running bot for the status endpoints"""

    def __init__(self):
        self.bot = None
        self.tracker = None
        self.audio_service = None

    def set_references(self, bot, tracker=None, audio_service=None):
        """Set references to the bot and the services it reports on"""
        self.bot = bot
        self.tracker = tracker
        self.audio_service = audio_service

    def is_ready(self) -> bool:
        return bool(self.bot and not self.bot.is_closed() and self.bot.is_ready())

    def get_status(self) -> dict:
        """Get the current bot status"""
        return {
            "success": True,
            "bot_running": not self.bot.is_closed() if self.bot else False,
            "bot_ready": self.is_ready(),
            "guilds": len(self.bot.guilds) if self.is_ready() else 0,
            "open_voice_sessions": self.tracker.open_session_count if self.tracker else 0,
            "streaming_guilds": len(self.audio_service.streams) if self.audio_service else 0,
        }


# Create bot controller instance
bot_controller = BotController()


@bot_router.get("/status")
async def get_bot_status():
    """Get the current bot status"""
    return bot_controller.get_status()
