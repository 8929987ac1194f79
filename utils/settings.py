"""
Settings
Bot configuration read from environment variables
"""

import os
from dataclasses import dataclass
from typing import Optional


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value and value.strip().isdigit():
        return int(value.strip())
    return None


@dataclass
class BotSettings:
    """Runtime configuration for the bot"""
    discord_token: str = ""
    owner_id: Optional[int] = None
    command_prefix: str = "!"
    store_path: str = "data/store.json"
    sounds_dir: str = "sounds"
    default_report_channel_id: Optional[int] = None
    report_interval_seconds: int = 30 * 60
    cue_idle_timeout_seconds: float = 15.0
    gemini_api_key: Optional[str] = None
    spam_messages_per_second: float = 1.0
    spam_burst_limit: int = 5
    spam_timeout_minutes: int = 10
    port: int = 8004

    @classmethod
    def from_env(cls) -> "BotSettings":
        """Build settings from the process environment"""
        return cls(
            discord_token=os.getenv("DISCORD_TOKEN", ""),
            owner_id=_optional_int(os.getenv("OWNER_ID")),
            command_prefix=os.getenv("COMMAND_PREFIX", "!"),
            store_path=os.getenv("STORE_PATH", "data/store.json"),
            sounds_dir=os.getenv("SOUNDS_DIR", "sounds"),
            default_report_channel_id=_optional_int(os.getenv("VOICE_LOG_CHANNEL_ID")),
            report_interval_seconds=int(os.getenv("REPORT_INTERVAL_SECONDS", "1800")),
            cue_idle_timeout_seconds=float(os.getenv("CUE_IDLE_TIMEOUT_SECONDS", "15")),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            spam_messages_per_second=float(os.getenv("SPAM_MESSAGES_PER_SECOND", "1")),
            spam_burst_limit=int(os.getenv("SPAM_BURST_LIMIT", "5")),
            spam_timeout_minutes=int(os.getenv("SPAM_TIMEOUT_MINUTES", "10")),
            port=int(os.getenv("PORT", "8004")),
        )
