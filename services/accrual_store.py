"""
Accrual Store
Durable voice-time totals per (guild, user, day), guild settings and the
deleted-message log, all kept in the key-value store
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from services.errors import PersistenceError, StoreError

logger = logging.getLogger("kakuli-bot")

VOICE_TIME_PREFIX = "voiceTime"
MAX_SNIPES = 50


class ConfigKind(Enum):
    """Per-guild channel settings"""
    VOICE_REPORT = "voiceLogChannelId"
    SNIPE_CHANNEL = "snipeChannel"


@dataclass(frozen=True)
class AccrualEntry:
    """A user's recorded voice time for one day"""
    user_id: str
    total_seconds: int


def voice_time_key(guild_id, user_id, day: str) -> str:
    return f"{VOICE_TIME_PREFIX}_{guild_id}_{user_id}_{day}"


class AccrualStore:
    """Wraps the key-value store.

    The store has no atomic increment, so every read-modify-write goes through
    a lock keyed by the record key. Two concurrent add_seconds calls for the
    same key both land in the total.
    """

    def __init__(self, store):
        """
        Initialize the accrual store.

        Args:
            store: Key-value store offering async get(key), set(key, value), all()
        """
        self.store = store
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def add_seconds(self, guild_id, user_id, day: str, delta_seconds: int):
        """Merge delta_seconds into the (guild, user, day) total"""
        if delta_seconds <= 0:
            return
        key = voice_time_key(guild_id, user_id, day)
        lock = self._lock_for(key)
        async with lock:
            try:
                current = await self.store.get(key)
                await self.store.set(key, int(current or 0) + delta_seconds)
            except StoreError as e:
                logger.error(
                    f"Lost voice time: guild={guild_id} user={user_id} day={day} "
                    f"seconds={delta_seconds} cause={e}"
                )
                raise PersistenceError(f"Could not add {delta_seconds}s to {key}") from e

    async def get_day(self, guild_id, day: str) -> List[AccrualEntry]:
        """Get every user's total for a guild and day, in insertion order"""
        prefix = f"{VOICE_TIME_PREFIX}_{guild_id}_"
        suffix = f"_{day}"
        try:
            entries = await self.store.all()
        except StoreError as e:
            logger.error(f"Could not read voice time for guild={guild_id} day={day}: {e}")
            raise PersistenceError(f"Could not read voice time for {day}") from e

        results = []
        for entry in entries:
            key = entry["id"]
            if not (key.startswith(prefix) and key.endswith(suffix)):
                continue
            user_id = key[len(prefix):-len(suffix)]
            # Guard against a user id segment that itself contains the day
            if not user_id or "_" in user_id:
                continue
            results.append(AccrualEntry(user_id=user_id, total_seconds=int(entry["value"] or 0)))
        return results

    async def set_guild_config(self, guild_id, kind: ConfigKind, channel_id):
        """Set a per-guild channel setting, overwriting any previous value"""
        key = f"{kind.value}_{guild_id}"
        try:
            await self.store.set(key, str(channel_id))
        except StoreError as e:
            logger.error(f"Could not save {kind.name} for guild={guild_id}: {e}")
            raise PersistenceError(f"Could not save {kind.name}") from e
        logger.info(f"Guild {guild_id} {kind.name} set to channel {channel_id}")

    async def get_guild_config(self, guild_id, kind: ConfigKind) -> Optional[str]:
        """Get a per-guild channel setting, or None when unset"""
        key = f"{kind.value}_{guild_id}"
        try:
            value = await self.store.get(key)
        except StoreError as e:
            logger.error(f"Could not read {kind.name} for guild={guild_id}: {e}")
            raise PersistenceError(f"Could not read {kind.name}") from e
        return str(value) if value else None

    async def record_snipe(self, guild_id, entry: Dict[str, Any]):
        """Prepend a deleted message to the guild's bounded log"""
        key = f"snipe_{guild_id}"
        lock = self._lock_for(key)
        async with lock:
            try:
                snipes = await self.store.get(key) or []
                snipes = [entry] + list(snipes)
                await self.store.set(key, snipes[:MAX_SNIPES])
            except StoreError as e:
                logger.error(f"Could not log deleted message for guild={guild_id}: {e}")
                raise PersistenceError("Could not log deleted message") from e

    async def get_snipes(self, guild_id) -> List[Dict[str, Any]]:
        """Get the guild's deleted messages, newest first"""
        try:
            return list(await self.store.get(f"snipe_{guild_id}") or [])
        except StoreError as e:
            logger.error(f"Could not read deleted messages for guild={guild_id}: {e}")
            raise PersistenceError("Could not read deleted messages") from e
