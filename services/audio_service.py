"""
Audio Service
Joins voice channels to play short cue sounds or stream audio from URLs
"""

import asyncio
import itertools
import json
import logging
import os
import sys
from typing import Dict, Optional

import discord

logger = logging.getLogger("kakuli-bot")

# FFmpeg options
FFMPEG_OPTIONS = {
    'before_options': '-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5',
    'options': '-vn',
}


async def run_yt_dlp(url: str) -> dict:
    """Run yt-dlp to resolve a streamable audio URL without downloading"""
    cmd = [
        sys.executable, '-m', 'yt_dlp',
        '--no-playlist',
        '--quiet',
        '--no-warnings',
        '--dump-single-json',
        '-f', 'bestaudio/best',
        url,
    ]

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )

    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        error_msg = stderr.decode().strip()
        logger.error(f"yt-dlp error: {error_msg}")
        raise RuntimeError(f"yt-dlp failed: {error_msg}")

    output = stdout.decode().strip()
    try:
        return json.loads(output)
    except json.JSONDecodeError:
        logger.error(f"Failed to parse yt-dlp output: {output[:200]}")
        raise


class YTDLSource(discord.PCMVolumeTransformer):
    def __init__(self, source, *, data, volume=0.5):
        super().__init__(source, volume)
        self.data = data
        self.title = data.get('title')
        self.url = data.get('url')

    @classmethod
    async def from_url(cls, url: str):
        data = await run_yt_dlp(url)

        if 'entries' in data:
            # take first item from a playlist
            data = data['entries'][0]

        return cls(discord.FFmpegPCMAudio(data['url'], **FFMPEG_OPTIONS), data=data)


class AudioService:
    """Owns the bot's voice connections"""

    def __init__(self, sounds_dir: str = "sounds", idle_timeout: float = 15.0):
        """
        Initialize the audio service.

        Args:
            sounds_dir: Directory containing cue files such as join.mp3
            idle_timeout: Seconds after which a cue connection is dropped
        """
        self.sounds_dir = sounds_dir
        self.idle_timeout = idle_timeout
        # Guild ID -> voice client currently streaming a URL
        self.streams: Dict[int, discord.VoiceClient] = {}
        self._cue_timeouts: Dict[int, asyncio.Task] = {}
        # Guild ID -> id of the playback whose end may tear the connection down
        self._playback_ids: Dict[int, int] = {}
        self._playback_counter = itertools.count(1)

    def is_streaming(self, guild_id: int) -> bool:
        return guild_id in self.streams

    def _begin_playback(self, guild_id: int) -> int:
        playback_id = next(self._playback_counter)
        self._playback_ids[guild_id] = playback_id
        return playback_id

    def _is_current(self, guild_id: int, playback_id: int) -> bool:
        return self._playback_ids.get(guild_id) == playback_id

    async def _connect(self, channel: discord.VoiceChannel) -> discord.VoiceClient:
        voice_client = channel.guild.voice_client
        if voice_client is not None:
            if voice_client.channel != channel:
                await voice_client.move_to(channel)
            return voice_client
        return await channel.connect()

    async def play_cue(self, channel: discord.VoiceChannel, file_name: str) -> bool:
        """Play a local cue file in channel, then leave"""
        guild_id = channel.guild.id
        if self.is_streaming(guild_id):
            return False

        file_path = os.path.join(self.sounds_dir, file_name)
        if not os.path.exists(file_path):
            logger.warning(f"Cue file not found: {file_path}")
            return False

        try:
            voice_client = await self._connect(channel)
        except (discord.ClientException, discord.HTTPException, asyncio.TimeoutError) as e:
            logger.error(f"Failed to join voice channel '{channel.name}': {e}")
            return False

        loop = asyncio.get_running_loop()
        # Claimed before stop() so the interrupted cue's callback is stale
        playback_id = self._begin_playback(guild_id)
        try:
            if voice_client.is_playing():
                voice_client.stop()
            voice_client.play(
                discord.FFmpegPCMAudio(file_path),
                after=lambda e: self._cue_finished_callback(guild_id, playback_id, voice_client, e, loop)
            )
        except discord.ClientException as e:
            logger.error(f"Failed to play cue {file_name} in guild {guild_id}: {e}")
            self._playback_ids.pop(guild_id, None)
            await self._disconnect(guild_id, voice_client)
            return False

        self._schedule_cue_timeout(guild_id, playback_id, voice_client)
        logger.info(f"Playing cue {file_name} in '{channel.name}'")
        return True

    def _schedule_cue_timeout(self, guild_id: int, playback_id: int, voice_client: discord.VoiceClient):
        previous = self._cue_timeouts.pop(guild_id, None)
        if previous:
            previous.cancel()
        self._cue_timeouts[guild_id] = asyncio.create_task(
            self._cue_timeout(guild_id, playback_id, voice_client)
        )

    async def _cue_timeout(self, guild_id: int, playback_id: int, voice_client: discord.VoiceClient):
        await asyncio.sleep(self.idle_timeout)
        if not self._is_current(guild_id, playback_id):
            return
        self._cue_timeouts.pop(guild_id, None)
        self._playback_ids.pop(guild_id, None)
        await self._disconnect(guild_id, voice_client)

    def _cue_finished_callback(self, guild_id: int, playback_id: int, voice_client, error, loop):
        """Callback for when a cue finishes playing"""
        if error:
            logger.error(f"Cue player error: {error}")
        # Runs on the audio thread; hop back onto the event loop
        asyncio.run_coroutine_threadsafe(self._cue_finished(guild_id, playback_id, voice_client), loop)

    async def _cue_finished(self, guild_id: int, playback_id: int, voice_client):
        if not self._is_current(guild_id, playback_id):
            return
        self._playback_ids.pop(guild_id, None)
        task = self._cue_timeouts.pop(guild_id, None)
        if task:
            task.cancel()
        await self._disconnect(guild_id, voice_client)

    async def _disconnect(self, guild_id: int, voice_client):
        if voice_client is not None and voice_client.is_connected():
            try:
                await voice_client.disconnect()
            except discord.HTTPException as e:
                logger.error(f"Error leaving voice in guild {guild_id}: {e}")

    async def stream_url(self, channel: discord.VoiceChannel, url: str) -> Optional[str]:
        """
        Stream the audio behind url into channel.

        Returns:
            The resolved title, or None if the URL could not be played
        """
        guild_id = channel.guild.id
        try:
            player = await YTDLSource.from_url(url)
        except (RuntimeError, ValueError, KeyError, IndexError) as e:
            logger.error(f"Could not resolve audio for {url}: {e}")
            return None

        try:
            voice_client = await self._connect(channel)
        except (discord.ClientException, discord.HTTPException, asyncio.TimeoutError) as e:
            logger.error(f"Failed to join voice channel '{channel.name}': {e}")
            return None

        task = self._cue_timeouts.pop(guild_id, None)
        if task:
            task.cancel()

        loop = asyncio.get_running_loop()
        playback_id = self._begin_playback(guild_id)
        self.streams[guild_id] = voice_client
        if voice_client.is_playing():
            voice_client.stop()
        voice_client.play(
            player,
            after=lambda e: self._stream_finished_callback(guild_id, playback_id, voice_client, e, loop)
        )
        logger.info(f"Streaming {url} in '{channel.name}'")
        return player.title or url

    def _stream_finished_callback(self, guild_id: int, playback_id: int, voice_client, error, loop):
        """Callback for when a stream ends"""
        if error:
            logger.error(f"Player error: {error}")
        asyncio.run_coroutine_threadsafe(self._stream_finished(guild_id, playback_id, voice_client), loop)

    async def _stream_finished(self, guild_id: int, playback_id: int, voice_client):
        if not self._is_current(guild_id, playback_id):
            return
        self._playback_ids.pop(guild_id, None)
        self.streams.pop(guild_id, None)
        await self._disconnect(guild_id, voice_client)
