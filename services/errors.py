"""
Errors
Exception types shared by the bot services and controllers
"""


class BotError(Exception):
    """Base class for bot errors"""


class StoreError(BotError):
    """Raised by the key-value store when a read or write fails"""


class PersistenceError(BotError):
    """Raised when voice time or guild settings could not be persisted"""


class ConfigurationError(BotError):
    """Raised when a guild setting is missing or points at an unusable channel"""


class ValidationError(BotError):
    """Raised for malformed command input; the message is shown to the user"""
