"""
Presence Tracker
Tracks open voice sessions per (guild, user) and turns channel transitions into
elapsed-seconds deltas
"""

import logging
from typing import Dict, Hashable, List, Optional, Tuple

from models.voice_session import (
    SettledDelta,
    TransitionResult,
    TransitionType,
    VoiceSession,
)

logger = logging.getLogger("kakuli-bot")

SessionKey = Tuple[Hashable, Hashable]


class PresenceTracker:
    """Owns the in-memory session map; never touches persistence.

    Every method is synchronous, so on a single event loop no two calls can
    interleave part way through. Callers route the returned deltas into the
    accrual store themselves.
    """

    def __init__(self, sessions: Optional[Dict[SessionKey, VoiceSession]] = None):
        self._sessions: Dict[SessionKey, VoiceSession] = sessions if sessions is not None else {}

    def on_transition(self,
                      guild_id: Hashable,
                      user_id: Hashable,
                      old_channel_id,
                      new_channel_id,
                      now_ms: int) -> TransitionResult:
        """
        Apply one voice-state change.

        Args:
            guild_id: Guild the change happened in
            user_id: Member whose voice state changed
            old_channel_id: Channel before the change, or None
            new_channel_id: Channel after the change, or None
            now_ms: Wall-clock time of the change in milliseconds

        Returns:
            The transition type and the whole seconds to credit (0 if none)
        """
        transition = TransitionType.classify(old_channel_id, new_channel_id)
        key = (guild_id, user_id)
        session = self._sessions.get(key)

        if transition is TransitionType.JOIN:
            # A redelivered join restarts the clock instead of crediting anything
            self._sessions[key] = VoiceSession(guild_id, user_id, now_ms)
            return TransitionResult(transition, 0)

        if transition is TransitionType.LEAVE:
            if session is None:
                return TransitionResult(transition, 0)
            del self._sessions[key]
            return TransitionResult(transition, session.elapsed_seconds(now_ms))

        if transition is TransitionType.MOVE:
            delta = session.elapsed_seconds(now_ms) if session is not None else 0
            self._sessions[key] = VoiceSession(guild_id, user_id, now_ms)
            return TransitionResult(transition, delta)

        return TransitionResult(TransitionType.IGNORE, 0)

    def settle_all(self, now_ms: int) -> List[SettledDelta]:
        """Credit every open session up to now_ms and restart its clock"""
        settled = []
        for session in self._sessions.values():
            delta = session.elapsed_seconds(now_ms)
            session.started_at_ms = now_ms
            if delta:
                settled.append(SettledDelta(session.guild_id, session.user_id, delta))
        logger.debug(f"Settled {len(settled)} of {len(self._sessions)} open voice sessions")
        return settled

    def resume(self, guild_id: Hashable, user_id: Hashable, now_ms: int) -> bool:
        """Open a session for a member already in voice, unless one is open"""
        key = (guild_id, user_id)
        if key in self._sessions:
            return False
        self._sessions[key] = VoiceSession(guild_id, user_id, now_ms)
        return True

    def close(self, guild_id: Hashable, user_id: Hashable, now_ms: int) -> int:
        """Drop a session whose Leave was never seen; returns the seconds to credit"""
        session = self._sessions.pop((guild_id, user_id), None)
        if session is None:
            return 0
        return session.elapsed_seconds(now_ms)

    def open_users(self, guild_id: Hashable) -> List[Hashable]:
        return [user_id for (session_guild, user_id) in self._sessions if session_guild == guild_id]

    def is_open(self, guild_id: Hashable, user_id: Hashable) -> bool:
        return (guild_id, user_id) in self._sessions

    @property
    def open_session_count(self) -> int:
        return len(self._sessions)
