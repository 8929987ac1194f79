"""
Voice Time Service
Routes presence deltas into the accrual store and renders daily voice-time reports
"""

import asyncio
import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

import discord

from models.voice_session import TransitionResult
from services.accrual_store import AccrualEntry, AccrualStore, ConfigKind
from services.errors import ConfigurationError, PersistenceError, ValidationError
from services.presence_tracker import PresenceTracker
from utils.message_utils import format_duration, send_message

logger = logging.getLogger("kakuli-bot")

DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def now_ms() -> int:
    return int(time.time() * 1000)


def day_for(timestamp_ms: int) -> str:
    """UTC calendar day for a millisecond timestamp"""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def resolve_day(argument: Optional[str], timestamp_ms: int) -> str:
    """
    Turn a report argument into a day string.

    Args:
        argument: None, "today", "yesterday" or a YYYY-MM-DD date
        timestamp_ms: Reference time for today/yesterday

    Raises:
        ValidationError: If the argument is not a valid date
    """
    value = (argument or "today").strip().lower()
    if value == "today":
        return day_for(timestamp_ms)
    if value == "yesterday":
        return day_for(timestamp_ms - int(timedelta(days=1).total_seconds() * 1000))
    if DAY_PATTERN.match(value):
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError:
            raise ValidationError("Invalid date format.") from None
        return value
    raise ValidationError("Invalid date format.")


def format_report(day: str, entries: List[AccrualEntry], auto: bool = False) -> str:
    """Render totals as one line per user"""
    lines = [f"<@{entry.user_id}> - **{format_duration(entry.total_seconds)}**" for entry in entries]
    if auto:
        header = "⏱️ **[Auto Report] Voice Time So Far Today**"
    else:
        header = f"📊 **Voice Time for {day}**"
    return f"{header}:\n\n" + "\n".join(lines)


class VoiceTimeService:
    """Service joining the presence tracker to the accrual store"""

    def __init__(self,
                 tracker: PresenceTracker,
                 accrual_store: AccrualStore,
                 default_report_channel_id: Optional[int] = None):
        """
        Initialize the voice time service.

        Args:
            tracker: Owner of the open voice sessions
            accrual_store: Durable per-day totals
            default_report_channel_id: Report channel for guilds without one configured
        """
        self.tracker = tracker
        self.accrual_store = accrual_store
        self.default_report_channel_id = default_report_channel_id
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def record_transition(self, guild_id, user_id, old_channel_id, new_channel_id,
                                timestamp_ms: Optional[int] = None) -> TransitionResult:
        """Apply a voice-state change and persist any elapsed time"""
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        result = self.tracker.on_transition(guild_id, user_id, old_channel_id, new_channel_id, timestamp_ms)
        if result.delta_seconds:
            try:
                await self.accrual_store.add_seconds(guild_id, user_id, day_for(timestamp_ms), result.delta_seconds)
            except PersistenceError:
                # Already logged with the amount for manual replay
                pass
        return result

    async def settle(self, timestamp_ms: Optional[int] = None) -> int:
        """Credit every open session up to now; returns the number of records written"""
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        day = day_for(timestamp_ms)
        written = 0
        for delta in self.tracker.settle_all(timestamp_ms):
            try:
                await self.accrual_store.add_seconds(delta.guild_id, delta.user_id, day, delta.delta_seconds)
                written += 1
            except PersistenceError:
                continue
        return written

    async def reconcile_guild(self, guild_id, present_user_ids: Iterable,
                              timestamp_ms: Optional[int] = None) -> Tuple[int, int]:
        """
        Bring the guild's open sessions in line with who is actually in voice.

        Sessions of members no longer present are closed and their time
        credited; present members without a session get one.

        Returns:
            (sessions restored, sessions closed)
        """
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        present = set(present_user_ids)

        closed = 0
        for user_id in self.tracker.open_users(guild_id):
            if user_id in present:
                continue
            delta = self.tracker.close(guild_id, user_id, timestamp_ms)
            closed += 1
            if delta:
                try:
                    await self.accrual_store.add_seconds(guild_id, user_id, day_for(timestamp_ms), delta)
                except PersistenceError:
                    pass

        restored = 0
        for user_id in present:
            if self.tracker.resume(guild_id, user_id, timestamp_ms):
                restored += 1
        return restored, closed

    async def build_report(self, guild_id, day: str, timestamp_ms: Optional[int] = None) -> Optional[str]:
        """Settle open sessions, then render the guild's report for day (None if empty)"""
        await self.settle(timestamp_ms)
        entries = await self.accrual_store.get_day(guild_id, day)
        if not entries:
            return None
        return format_report(day, entries)

    async def set_report_channel(self, guild_id, channel_id):
        await self.accrual_store.set_guild_config(guild_id, ConfigKind.VOICE_REPORT, channel_id)

    async def get_report_channel(self, bot, guild) -> discord.abc.Messageable:
        """
        Find the channel periodic reports go to.

        Raises:
            ConfigurationError: If none is configured or it no longer exists
        """
        channel_id = await self.accrual_store.get_guild_config(guild.id, ConfigKind.VOICE_REPORT)
        channel_id = channel_id or self.default_report_channel_id
        if not channel_id:
            raise ConfigurationError(f"No voice report channel configured for guild {guild.id}")

        channel = bot.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await bot.fetch_channel(int(channel_id))
            except discord.HTTPException as e:
                raise ConfigurationError(f"Voice report channel {channel_id} is unavailable: {e}") from e
        if not isinstance(channel, discord.abc.Messageable):
            raise ConfigurationError(f"Voice report channel {channel_id} is not a text channel")
        return channel

    async def report_cycle(self, bot, timestamp_ms: Optional[int] = None) -> int:
        """Send today's auto report to every guild; returns how many were sent"""
        timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
        day = day_for(timestamp_ms)
        await self.settle(timestamp_ms)

        sent = 0
        for guild in bot.guilds:
            try:
                channel = await self.get_report_channel(bot, guild)
                entries = await self.accrual_store.get_day(guild.id, day)
                if not entries:
                    continue
                if await send_message(channel, format_report(day, entries, auto=True)):
                    sent += 1
            except ConfigurationError as e:
                logger.warning(f"Skipping voice report for guild {guild.id}: {e}")
            except PersistenceError as e:
                logger.error(f"Voice report for guild {guild.id} failed: {e}")
        return sent

    async def run_periodic_reports(self, bot, interval_seconds: float):
        """Background task sending auto reports every interval_seconds"""
        self._running = True
        self._task = asyncio.current_task()
        logger.info(f"Voice reports every {interval_seconds} seconds")
        while self._running:
            await asyncio.sleep(interval_seconds)
            try:
                await self.report_cycle(bot)
            except Exception as e:
                logger.error(f"Voice report cycle failed: {e}")

    def stop(self):
        """Stop the periodic report loop"""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
