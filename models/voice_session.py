"""
Voice Session Model
Types produced by the presence tracker
"""

from dataclasses import dataclass
from enum import Enum
from typing import Hashable


class TransitionType(Enum):
    """Kind of voice-state change observed for a member"""
    JOIN = "join"
    LEAVE = "leave"
    MOVE = "move"
    IGNORE = "ignore"

    @classmethod
    def classify(cls, old_channel_id, new_channel_id) -> "TransitionType":
        """Classify a change from old_channel_id to new_channel_id"""
        if old_channel_id == new_channel_id:
            return cls.IGNORE
        if old_channel_id is None:
            return cls.JOIN
        if new_channel_id is None:
            return cls.LEAVE
        return cls.MOVE


@dataclass
class VoiceSession:
    """A member's open stay in a voice channel"""
    guild_id: Hashable
    user_id: Hashable
    started_at_ms: int

    def elapsed_seconds(self, now_ms: int) -> int:
        """Whole seconds since the session (re)started, never negative"""
        return max(0, (now_ms - self.started_at_ms) // 1000)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a single voice-state change"""
    type: TransitionType
    delta_seconds: int = 0


@dataclass(frozen=True)
class SettledDelta:
    """Time accrued by a still-open session since its last settle"""
    guild_id: Hashable
    user_id: Hashable
    delta_seconds: int
