"""
Spam Guard
Per-member token bucket that times out members who flood a guild
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Hashable, Tuple

import discord

logger = logging.getLogger("kakuli-bot")


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting"""
    max_messages_per_second: float = 1.0
    burst_limit: int = 5
    timeout_minutes: int = 10


class RateLimiter:
    """Token bucket rate limiter"""

    def __init__(self, config: RateLimitConfig = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self.tokens = float(self.config.burst_limit)
        self.last_update = clock()

    def acquire(self) -> bool:
        """Take a token if one is available"""
        now = self._clock()
        time_passed = max(0.0, now - self.last_update)

        # Add tokens based on time passed
        tokens_to_add = time_passed * self.config.max_messages_per_second
        self.tokens = min(self.tokens + tokens_to_add, self.config.burst_limit)
        self.last_update = now

        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False


class SpamGuard:
    """Tracks message rate per (guild, member) and times out floods"""

    def __init__(self, config: RateLimitConfig = None, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the spam guard.

        Args:
            config: Bucket size, refill rate and timeout length
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._limiters: Dict[Tuple[Hashable, Hashable], RateLimiter] = {}
        self._last_sweep = clock()

    @property
    def refill_seconds(self) -> float:
        """Idle time after which any bucket is full again"""
        return self.config.burst_limit / self.config.max_messages_per_second

    def allow(self, guild_id: Hashable, user_id: Hashable) -> bool:
        """Record one message and report whether it is within the limit"""
        self._evict_idle()
        key = (guild_id, user_id)
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = RateLimiter(self.config, self._clock)
            self._limiters[key] = limiter
        return limiter.acquire()

    def reset(self, guild_id: Hashable, user_id: Hashable):
        self._limiters.pop((guild_id, user_id), None)

    def _evict_idle(self):
        # A bucket idle for refill_seconds is full, same as a new one
        now = self._clock()
        if now - self._last_sweep < self.refill_seconds:
            return
        self._last_sweep = now
        idle = [key for key, limiter in self._limiters.items()
                if now - limiter.last_update >= self.refill_seconds]
        for key in idle:
            del self._limiters[key]

    async def check_message(self, message: discord.Message) -> bool:
        """
        Check a guild message and time out its author on a flood.

        Returns:
            True if the message is allowed, False if the author was flooding
        """
        if message.author.bot or message.guild is None:
            return True

        if self.allow(message.guild.id, message.author.id):
            return True
        self.reset(message.guild.id, message.author.id)

        logger.warning(f"Message flood from {message.author} ({message.author.id}) in guild {message.guild.id}")
        try:
            await message.author.timeout(
                timedelta(minutes=self.config.timeout_minutes),
                reason="Sending messages too fast",
            )
            await message.channel.send(
                f"{message.author.mention} has been timed out for "
                f"{self.config.timeout_minutes} minutes for spamming."
            )
        except discord.HTTPException as e:
            logger.error(f"Could not time out {message.author.id} in guild {message.guild.id}: {e}")
        return False
