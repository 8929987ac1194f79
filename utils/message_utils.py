"""
Message Utilities
Helper functions for message formatting and splitting
"""

import logging

import discord

logger = logging.getLogger("kakuli-bot")

MAX_MESSAGE_LENGTH = 2000  # Discord's message limit


def format_duration(total_seconds: int) -> str:
    """Format seconds as '1h 2m 3s'"""
    total_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list:
    """
    Split a long message into multiple chunks that fit within Discord's limit.

    Args:
        text: The text to split
        max_length: Maximum length of each chunk (default: 2000 for Discord)

    Returns:
        List of message chunks
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        # Try to split at a newline for cleaner breaks
        split_pos = remaining.rfind('\n', 0, max_length)
        if split_pos <= 0:
            # No newline found, split at max_length
            split_pos = max_length

        chunks.append(remaining[:split_pos])
        remaining = remaining[split_pos:].lstrip('\n')

    return chunks


async def send_message(channel, text: str) -> bool:
    """
    Send a long message to a Discord channel, splitting if necessary.

    Args:
        channel: Discord channel to send to
        text: The message text

    Returns:
        True if all chunks sent successfully, False otherwise
    """
    for i, chunk in enumerate(split_message(text)):
        try:
            await channel.send(chunk)
        except discord.HTTPException as e:
            logger.error(f"Error sending message chunk {i}: {e}")
            return False

    return True
