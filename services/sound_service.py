"""
Sound Service
Handles the join/leave cue files on disk
"""

import logging
import os

import aiofiles

from services.errors import ValidationError

logger = logging.getLogger("kakuli-bot")

ALLOWED_SOUNDS = ("join.mp3", "leave.mp3")


class SoundService:
    def __init__(self, sounds_dir: str = "sounds"):
        self.sounds_dir = sounds_dir

    def get_file_path(self, file_name: str) -> str:
        """Get the path of a cue file, rejecting names other than the cues"""
        if file_name not in ALLOWED_SOUNDS:
            raise ValidationError("You can only upload `join.mp3` or `leave.mp3`.")
        return os.path.join(self.sounds_dir, file_name)

    async def save_sound(self, file_name: str, content_bytes: bytes):
        """Replace a cue file with content_bytes"""
        file_path = self.get_file_path(file_name)
        if self.sounds_dir and not os.path.exists(self.sounds_dir):
            os.makedirs(self.sounds_dir, exist_ok=True)

        try:
            async with aiofiles.open(file_path, mode='wb') as f:
                await f.write(content_bytes)
        except OSError as e:
            logger.error(f"Error writing sound file {file_path}: {e}")
            raise

        logger.info(f"Replaced cue {file_path} ({len(content_bytes)} bytes)")
        return file_path, os.path.getsize(file_path)
