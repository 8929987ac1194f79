"""
Services package for Kakuli bot
"""

from services.presence_tracker import PresenceTracker
from services.accrual_store import AccrualStore, AccrualEntry, ConfigKind
from services.store import JsonFileStore
from services.voice_time_service import VoiceTimeService
from services.audio_service import AudioService
from services.spam_guard import SpamGuard, RateLimiter, RateLimitConfig

__all__ = [
    "PresenceTracker",
    "AccrualStore",
    "AccrualEntry",
    "ConfigKind",
    "JsonFileStore",
    "VoiceTimeService",
    "AudioService",
    "SpamGuard",
    "RateLimiter",
    "RateLimitConfig"
]
