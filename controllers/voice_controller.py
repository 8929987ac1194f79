"""
Voice Controller
Handles voice-state events: voice-time accounting and the owner's cue sounds
"""

import logging
from typing import Optional

import discord
from discord.ext import commands

from models.voice_session import TransitionType
from services.audio_service import AudioService
from services.voice_time_service import VoiceTimeService, now_ms

logger = logging.getLogger("kakuli-bot")

JOIN_SOUND = "join.mp3"
LEAVE_SOUND = "leave.mp3"


class VoiceController:
    """Controller for Discord voice-state events"""

    def __init__(self,
                 bot: commands.Bot,
                 voice_time_service: VoiceTimeService,
                 audio_service: AudioService,
                 owner_id: Optional[int] = None):
        """
        Initialize the voice controller.

        Args:
            bot: Discord bot instance
            voice_time_service: Voice-time accounting
            audio_service: Plays the owner's join/leave cues
            owner_id: Member whose joins and leaves trigger cues
        """
        self.bot = bot
        self.voice_time_service = voice_time_service
        self.audio_service = audio_service
        self.owner_id = owner_id

        # Register event handler
        bot.event(self.on_voice_state_update)

    async def on_voice_state_update(self,
                                    member: discord.Member,
                                    before: discord.VoiceState,
                                    after: discord.VoiceState):
        """Handle a member joining, leaving or moving between voice channels"""
        if member.bot:
            return

        old_channel = before.channel
        new_channel = after.channel
        result = await self.voice_time_service.record_transition(
            member.guild.id,
            member.id,
            old_channel.id if old_channel else None,
            new_channel.id if new_channel else None,
        )

        if result.type is not TransitionType.IGNORE:
            logger.info(
                f"{member} ({member.id}) {result.type.value} in guild {member.guild.id}, "
                f"credited {result.delta_seconds}s"
            )

        if self.owner_id is not None and member.id == self.owner_id:
            await self._play_owner_cue(result.type, old_channel, new_channel)

    async def _play_owner_cue(self, transition: TransitionType, old_channel, new_channel):
        if transition is TransitionType.JOIN or transition is TransitionType.MOVE:
            await self.audio_service.play_cue(new_channel, JOIN_SOUND)
        elif transition is TransitionType.LEAVE:
            await self.audio_service.play_cue(old_channel, LEAVE_SOUND)

    async def restore_sessions(self) -> int:
        """Sync open sessions with who is in voice right now, e.g. after a reconnect"""
        timestamp = now_ms()
        restored = closed = 0
        for guild in self.bot.guilds:
            present = [
                member.id
                for channel in list(guild.voice_channels) + list(guild.stage_channels)
                for member in channel.members
                if not member.bot
            ]
            guild_restored, guild_closed = await self.voice_time_service.reconcile_guild(
                guild.id, present, timestamp
            )
            restored += guild_restored
            closed += guild_closed
        logger.info(f"Restored {restored} voice sessions, closed {closed} stale ones")
        return restored
