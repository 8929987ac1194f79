"""
Message Controller
Handles Discord message events: flood protection, command dispatch and
deleted-message logging
"""

import logging

import discord
from discord.ext import commands

from services.accrual_store import AccrualStore
from services.errors import PersistenceError
from services.spam_guard import SpamGuard
from services.voice_time_service import now_ms

logger = logging.getLogger("kakuli-bot")


class MessageController:
    """Controller for handling Discord message events"""

    def __init__(self,
                 bot: commands.Bot,
                 accrual_store: AccrualStore,
                 spam_guard: SpamGuard = None):
        """
        Initialize the message controller.

        Args:
            bot: Discord bot instance
            accrual_store: Holds the deleted-message log
            spam_guard: Per-member flood limiter
        """
        self.bot = bot
        self.accrual_store = accrual_store
        self.spam_guard = spam_guard

        # Register event handlers
        bot.event(self.on_message)
        bot.event(self.on_message_delete)

    async def on_message(self, message: discord.Message):
        """Handle incoming Discord messages"""
        # Ignore bots and DMs
        if message.author.bot or message.guild is None:
            return

        if self.spam_guard and not await self.spam_guard.check_message(message):
            return

        await self.bot.process_commands(message)

    async def on_message_delete(self, message: discord.Message):
        """Keep deleted guild messages for the snipe channel"""
        if message.author.bot or message.guild is None:
            return

        entry = {
            "content": message.content,
            "author": str(message.author),
            "authorId": str(message.author.id),
            "timestamp": now_ms(),
        }
        try:
            await self.accrual_store.record_snipe(message.guild.id, entry)
        except PersistenceError:
            return
        logger.debug(f"Logged deleted message {message.id} in guild {message.guild.id}")
