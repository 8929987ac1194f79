"""
Controllers package for Kakuli bot
"""

from controllers.message_controller import MessageController
from controllers.command_controller import CommandController
from controllers.voice_controller import VoiceController

__all__ = ["MessageController", "CommandController", "VoiceController"]
