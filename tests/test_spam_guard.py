import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from services.spam_guard import RateLimitConfig, RateLimiter, SpamGuard


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_message(user_id=5, guild_id=1):
    message = MagicMock()
    message.author.id = user_id
    message.author.bot = False
    message.author.mention = f"<@{user_id}>"
    message.author.timeout = AsyncMock()
    message.guild.id = guild_id
    message.channel.send = AsyncMock()
    return message


def test_rate_limiter_allows_burst_then_blocks():
    clock = FakeClock()
    limiter = RateLimiter(RateLimitConfig(max_messages_per_second=1, burst_limit=3), clock)

    assert [limiter.acquire() for _ in range(4)] == [True, True, True, False]


def test_rate_limiter_refills_over_time():
    clock = FakeClock()
    limiter = RateLimiter(RateLimitConfig(max_messages_per_second=2, burst_limit=2), clock)
    limiter.acquire()
    limiter.acquire()

    clock.now = 0.5

    assert limiter.acquire() is True
    assert limiter.acquire() is False


def test_spam_guard_tracks_members_separately():
    guard = SpamGuard(RateLimitConfig(max_messages_per_second=1, burst_limit=1), FakeClock())

    assert guard.allow(1, 5) is True
    assert guard.allow(1, 5) is False
    assert guard.allow(1, 6) is True
    assert guard.allow(2, 5) is True


@pytest.mark.asyncio
async def test_flood_times_out_member():
    guard = SpamGuard(RateLimitConfig(max_messages_per_second=1, burst_limit=2, timeout_minutes=3), FakeClock())
    message = make_message()

    results = [await guard.check_message(message) for _ in range(3)]

    assert results == [True, True, False]
    message.author.timeout.assert_awaited_once()
    assert message.author.timeout.call_args[0][0] == timedelta(minutes=3)
    message.channel.send.assert_awaited_once()

    # Bucket starts over after the timeout
    assert await guard.check_message(message) is True


@pytest.mark.asyncio
async def test_bots_are_never_limited():
    guard = SpamGuard(RateLimitConfig(max_messages_per_second=1, burst_limit=1), FakeClock())
    message = make_message()
    message.author.bot = True

    for _ in range(5):
        assert await guard.check_message(message) is True
    message.author.timeout.assert_not_called()


def test_idle_buckets_are_evicted():
    clock = FakeClock()
    guard = SpamGuard(RateLimitConfig(max_messages_per_second=1, burst_limit=5), clock)

    guard.allow(1, 5)
    clock.now = 3.0
    guard.allow(1, 6)
    assert len(guard._limiters) == 2

    clock.now = 6.0
    guard.allow(1, 7)

    assert set(guard._limiters) == {(1, 6), (1, 7)}


def test_active_bucket_survives_sweep():
    clock = FakeClock()
    guard = SpamGuard(RateLimitConfig(max_messages_per_second=1, burst_limit=2), clock)

    assert guard.allow(1, 5)
    clock.now = 1.9
    assert guard.allow(1, 5)
    assert guard.allow(1, 5)

    clock.now = 2.5
    assert not guard.allow(1, 5)
    assert (1, 5) in guard._limiters
