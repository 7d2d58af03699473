"""Desktop tool that downloads the message history of a Discord channel."""

__version__ = "1.0.0"
