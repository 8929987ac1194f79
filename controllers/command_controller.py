"""
Command Controller
Handles Discord bot commands
"""

import io
import logging
import re
from typing import Optional
from urllib.parse import urlparse

import discord
from discord.ext import commands

from services.accrual_store import AccrualStore, ConfigKind
from services.audio_service import AudioService
from services.errors import PersistenceError, ValidationError
from services.image_service import ImageService
from services.sound_service import SoundService
from services.voice_time_service import VoiceTimeService, now_ms, resolve_day
from utils.message_utils import MAX_MESSAGE_LENGTH, send_message

logger = logging.getLogger("kakuli-bot")

CHANNEL_MENTION = re.compile(r"^<#(\d+)>$")
MAX_SNIPES_SHOWN = 50


def parse_channel(guild: discord.Guild, reference: Optional[str]) -> discord.TextChannel:
    """
    Resolve a channel id or mention to a text channel of guild.

    Raises:
        ValidationError: If the reference is missing or not a text channel
    """
    if not reference:
        raise ValidationError("Please provide a channel ID.")
    match = CHANNEL_MENTION.match(reference.strip())
    channel_id = match.group(1) if match else reference.strip()
    if not channel_id.isdigit():
        raise ValidationError("Invalid channel ID or not a text channel.")
    channel = guild.get_channel(int(channel_id))
    if not isinstance(channel, discord.TextChannel):
        raise ValidationError("Invalid channel ID or not a text channel.")
    return channel


def is_url(text: str) -> bool:
    parsed = urlparse(text)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class CommandController:
    """Controller for handling Discord bot commands"""

    def __init__(self,
                 bot: commands.Bot,
                 voice_time_service: VoiceTimeService,
                 accrual_store: AccrualStore,
                 audio_service: AudioService,
                 image_service: ImageService,
                 sound_service: SoundService,
                 owner_id: Optional[int] = None):
        """
        Initialize the command controller.

        Args:
            bot: Discord bot instance
            voice_time_service: Voice-time reports
            accrual_store: Guild settings and the deleted-message log
            audio_service: Streams URLs into voice channels
            image_service: Prompt-to-image generation
            sound_service: Replaces the cue sound files
            owner_id: The only member allowed to upload cues
        """
        self.bot = bot
        self.voice_time_service = voice_time_service
        self.accrual_store = accrual_store
        self.audio_service = audio_service
        self.image_service = image_service
        self.sound_service = sound_service
        self.owner_id = owner_id

        # Register commands
        self._register_commands()

    def _register_commands(self):
        """Register all bot commands"""
        @self.bot.command(name="ping")
        async def ping(ctx):
            await self.ping(ctx)

        @self.bot.command(name="voicetime")
        async def voicetime(ctx, *args):
            await self.voicetime(ctx, *args)

        @self.bot.command(name="setsnipe")
        async def setsnipe(ctx, channel: str = None):
            await self.set_snipe_channel(ctx, channel)

        @self.bot.command(name="snips")
        async def snips(ctx):
            await self.show_snipes(ctx)

        @self.bot.command(name="upload")
        async def upload(ctx):
            await self.upload_sound(ctx)

        @self.bot.command(name="kakuli")
        async def kakuli(ctx, *, argument: str = ""):
            await self.kakuli(ctx, argument)

        @self.bot.event
        async def on_command_error(ctx, error):
            await self.on_command_error(ctx, error)

    async def ping(self, ctx):
        """Check if the bot is alive"""
        await ctx.send("Pong!")

    async def voicetime(self, ctx, *args):
        """Show voice time for a day, or set the report channel"""
        if args and args[0].lower() == "channel":
            await self.set_voice_log_channel(ctx, args[1] if len(args) > 1 else None)
            return

        try:
            day = resolve_day(args[0] if args else None, now_ms())
        except ValidationError as e:
            await ctx.send(f"❌ {e}")
            return

        try:
            report = await self.voice_time_service.build_report(ctx.guild.id, day)
        except PersistenceError:
            await ctx.send("❌ Voice time is unavailable right now. Please try again later.")
            return

        if report is None:
            await ctx.send(f"📭 No voice activity for **{day}**.")
            return
        await send_message(ctx.channel, report)

    async def set_voice_log_channel(self, ctx, reference: Optional[str]):
        """Set where the periodic voice report goes"""
        if ctx.author.top_role.position <= ctx.guild.me.top_role.position:
            await ctx.send("❌ You must have a higher role than the bot to set the voice log channel.")
            return

        try:
            channel = parse_channel(ctx.guild, reference)
        except ValidationError as e:
            await ctx.send(f"❌ {e}")
            return

        await self.voice_time_service.set_report_channel(ctx.guild.id, channel.id)
        await ctx.send(f"✅ Voice log channel set to <#{channel.id}>.")

    async def set_snipe_channel(self, ctx, reference: Optional[str]):
        """Set the private channel that may show deleted messages"""
        if not ctx.author.guild_permissions.administrator:
            await ctx.reply("❌ You must be an administrator to use this command.")
            return

        if ctx.message.channel_mentions:
            channel = ctx.message.channel_mentions[0]
        elif reference:
            try:
                channel = parse_channel(ctx.guild, reference)
            except ValidationError:
                await ctx.reply("❌ Please mention a valid text channel.")
                return
        else:
            channel = ctx.channel

        if not isinstance(channel, discord.TextChannel):
            await ctx.reply("❌ Please mention a valid text channel.")
            return

        await self.accrual_store.set_guild_config(ctx.guild.id, ConfigKind.SNIPE_CHANNEL, channel.id)
        await ctx.reply(f"✅ Snipes will now be shown in <#{channel.id}>.")

    async def show_snipes(self, ctx):
        """Show recent deleted messages the caller outranks (snipe channel only)"""
        snipe_channel_id = await self.accrual_store.get_guild_config(ctx.guild.id, ConfigKind.SNIPE_CHANNEL)
        if not snipe_channel_id or str(ctx.channel.id) != snipe_channel_id:
            return

        snipes = await self.accrual_store.get_snipes(ctx.guild.id)
        if not snipes:
            await ctx.reply("❌ No deleted messages recorded yet.")
            return

        invoker = ctx.author
        results = []
        for snipe in snipes[:MAX_SNIPES_SHOWN]:
            author_id = str(snipe.get("authorId", ""))
            author = await self._find_member(ctx.guild, author_id)
            if (author is None
                    or invoker.top_role.position > author.top_role.position
                    or str(invoker.id) == author_id):
                timestamp = int(snipe.get("timestamp", 0)) // 1000
                content = snipe.get("content") or "Empty Message"
                results.append(f"**{snipe.get('author')}** ({author_id}) - <t:{timestamp}:R>\n```{content}```")

        if not results:
            await ctx.reply("⚠️ You don't have permission to view any recent deleted messages.")
            return

        await ctx.reply("\n".join(results)[:MAX_MESSAGE_LENGTH], mention_author=False)

    async def _find_member(self, guild: discord.Guild, user_id: str) -> Optional[discord.Member]:
        if not user_id.isdigit():
            return None
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.HTTPException:
            return None

    async def upload_sound(self, ctx):
        """Replace join.mp3 or leave.mp3 with the attached file (owner only)"""
        if self.owner_id is None or ctx.author.id != self.owner_id:
            await ctx.reply("❌ Only the bot owner can upload sounds.")
            return

        if not ctx.message.attachments:
            await ctx.reply("❌ Please attach a file named `join.mp3` or `leave.mp3`.")
            return

        attachment = ctx.message.attachments[0]
        try:
            self.sound_service.get_file_path(attachment.filename)
        except ValidationError as e:
            await ctx.reply(f"❌ {e}")
            return

        try:
            content = await attachment.read()
            await self.sound_service.save_sound(attachment.filename, content)
        except (discord.HTTPException, OSError) as e:
            logger.error(f"Upload error: {e}")
            await ctx.reply("❌ Failed to save the file.")
            return

        await ctx.reply(f"✅ Successfully replaced `{attachment.filename}`.")

    async def kakuli(self, ctx, argument: str):
        """Stream a link into the caller's voice channel, or draw an image for a prompt"""
        argument = argument.strip()
        if not argument:
            await ctx.reply("❌ Please provide a description or a link after `!kakuli`.")
            return

        if is_url(argument.split()[0]):
            await self.play_url(ctx, argument.split()[0])
        else:
            await self.generate_image(ctx, argument)

    async def play_url(self, ctx, url: str):
        """Stream url into the caller's voice channel"""
        voice = getattr(ctx.author, "voice", None)
        if voice is None or voice.channel is None:
            await ctx.reply("❌ You must be in a voice channel to play music.")
            return

        async with ctx.typing():
            title = await self.audio_service.stream_url(voice.channel, url)

        if title is None:
            await ctx.reply("❌ Failed to play the video. Please try again.")
            return
        await ctx.send(f"▶️ Now playing: {title}")

    async def generate_image(self, ctx, prompt: str):
        """Generate an image for prompt and post it"""
        if not self.image_service.enabled:
            await ctx.reply("❌ Image generation is not configured.")
            return

        async with ctx.typing():
            image = await self.image_service.generate(prompt)

        if image is None:
            await ctx.reply("❌ No image could be generated. Try a different prompt.")
            return

        await ctx.send(
            content="Your loving girl Kakuli's AI-crafted image ❤️",
            file=discord.File(io.BytesIO(image), filename="kakuli.png"),
        )

    async def on_command_error(self, ctx, error):
        """Handle command errors"""
        if isinstance(error, commands.CommandNotFound):
            return
        original = getattr(error, "original", error)
        if isinstance(original, PersistenceError):
            await ctx.send("❌ Storage is unavailable right now. Please try again later.")
            return
        logger.error(f"Command error in {ctx.command}: {error}")
        await ctx.send(f"An error occurred: {error}")
