import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from services.audio_service import AudioService


class FakeVoiceClient:
    """Voice client whose stop() fires the after callback like discord.py does"""

    def __init__(self, channel=None):
        self.channel = channel
        self.connected = True
        self.disconnects = 0
        self._after = None

    def is_connected(self):
        return self.connected

    def is_playing(self):
        return self._after is not None

    def play(self, source, after=None):
        self._after = after

    def stop(self):
        after, self._after = self._after, None
        if after:
            after(None)

    async def move_to(self, channel):
        self.channel = channel

    async def disconnect(self, force=False):
        self.connected = False
        self.disconnects += 1


def make_voice_channel(guild_id=1, voice_client=None):
    channel = MagicMock()
    channel.name = "General"
    channel.guild.id = guild_id
    channel.guild.voice_client = voice_client
    channel.connect = AsyncMock()
    return channel


def make_connected_channel():
    voice_client = FakeVoiceClient()
    channel = make_voice_channel(voice_client=voice_client)
    voice_client.channel = channel
    return channel, voice_client


def make_voice_client():
    voice_client = MagicMock()
    voice_client.is_playing.return_value = False
    voice_client.is_connected.return_value = True
    voice_client.disconnect = AsyncMock()
    return voice_client


def patch_player(title="Song"):
    player = MagicMock()
    player.title = title
    return patch("services.audio_service.YTDLSource.from_url", AsyncMock(return_value=player))


async def let_callbacks_run():
    await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_cue_skipped_while_streaming(tmp_path):
    service = AudioService(str(tmp_path))
    (tmp_path / "join.mp3").write_bytes(b"x")
    service.streams[1] = MagicMock()
    channel = make_voice_channel()

    assert await service.play_cue(channel, "join.mp3") is False
    channel.connect.assert_not_called()


@pytest.mark.asyncio
async def test_cue_skipped_when_file_missing(tmp_path):
    service = AudioService(str(tmp_path))
    channel = make_voice_channel()

    assert await service.play_cue(channel, "join.mp3") is False
    channel.connect.assert_not_called()


@pytest.mark.asyncio
async def test_cue_disconnects_after_idle_timeout(tmp_path):
    (tmp_path / "join.mp3").write_bytes(b"x")
    service = AudioService(str(tmp_path), idle_timeout=0.01)
    voice_client = make_voice_client()
    channel = make_voice_channel()
    channel.connect.return_value = voice_client

    with patch("services.audio_service.discord.FFmpegPCMAudio") as audio:
        assert await service.play_cue(channel, "join.mp3") is True

    audio.assert_called_once_with(str(tmp_path / "join.mp3"))
    voice_client.play.assert_called_once()

    await asyncio.sleep(0.05)
    voice_client.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_cue_reuses_existing_connection(tmp_path):
    (tmp_path / "leave.mp3").write_bytes(b"x")
    service = AudioService(str(tmp_path), idle_timeout=60)
    voice_client = make_voice_client()
    channel = make_voice_channel(voice_client=voice_client)
    voice_client.channel = channel

    with patch("services.audio_service.discord.FFmpegPCMAudio"):
        assert await service.play_cue(channel, "leave.mp3") is True

    channel.connect.assert_not_called()
    voice_client.move_to.assert_not_called()
    service._cue_timeouts[1].cancel()


@pytest.mark.asyncio
async def test_stream_returns_title_and_owns_guild(tmp_path):
    (tmp_path / "join.mp3").write_bytes(b"x")
    service = AudioService(str(tmp_path))
    channel, voice_client = make_connected_channel()

    with patch_player():
        assert await service.stream_url(channel, "https://example.com/v") == "Song"

    assert service.streams[1] is voice_client
    assert await service.play_cue(channel, "join.mp3") is False
    assert voice_client.is_playing()


@pytest.mark.asyncio
async def test_stream_end_clears_stream_and_disconnects(tmp_path):
    service = AudioService(str(tmp_path))
    channel, voice_client = make_connected_channel()

    with patch_player():
        await service.stream_url(channel, "https://example.com/v")
    voice_client.stop()
    await let_callbacks_run()

    assert not service.is_streaming(1)
    assert voice_client.disconnects == 1


@pytest.mark.asyncio
async def test_stream_resolution_failure(tmp_path):
    service = AudioService(str(tmp_path))
    channel, _ = make_connected_channel()

    with patch("services.audio_service.YTDLSource.from_url", AsyncMock(side_effect=RuntimeError("yt-dlp failed"))):
        assert await service.stream_url(channel, "https://example.com/v") is None

    assert not service.is_streaming(1)


@pytest.mark.asyncio
async def test_second_stream_replaces_first_without_disconnecting(tmp_path):
    service = AudioService(str(tmp_path))
    channel, voice_client = make_connected_channel()

    with patch_player():
        await service.stream_url(channel, "https://example.com/a")
        await service.stream_url(channel, "https://example.com/b")
    await let_callbacks_run()

    assert service.streams[1] is voice_client
    assert voice_client.connected
    assert voice_client.disconnects == 0

    voice_client.stop()
    await let_callbacks_run()
    assert not service.is_streaming(1)
    assert voice_client.disconnects == 1


@pytest.mark.asyncio
async def test_second_cue_keeps_connection_and_timeout(tmp_path):
    (tmp_path / "join.mp3").write_bytes(b"x")
    service = AudioService(str(tmp_path), idle_timeout=60)
    channel, voice_client = make_connected_channel()

    with patch("services.audio_service.discord.FFmpegPCMAudio"):
        assert await service.play_cue(channel, "join.mp3") is True
        assert await service.play_cue(channel, "join.mp3") is True
    await let_callbacks_run()

    assert voice_client.connected
    timeout = service._cue_timeouts[1]
    assert not timeout.done()

    voice_client.stop()
    await let_callbacks_run()
    assert voice_client.disconnects == 1
    assert timeout.cancelled()


@pytest.mark.asyncio
async def test_stream_interrupting_cue_keeps_connection(tmp_path):
    (tmp_path / "join.mp3").write_bytes(b"x")
    service = AudioService(str(tmp_path), idle_timeout=60)
    channel, voice_client = make_connected_channel()

    with patch("services.audio_service.discord.FFmpegPCMAudio"):
        await service.play_cue(channel, "join.mp3")
    with patch_player():
        await service.stream_url(channel, "https://example.com/v")
    await let_callbacks_run()

    assert service.is_streaming(1)
    assert voice_client.connected
    assert 1 not in service._cue_timeouts
