"""Real-time WebSocket chat relay with admin moderation commands."""

__version__ = "1.0.0"
