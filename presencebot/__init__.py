"""Presence/status time tracking for Discord guilds."""

__version__ = "0.3.0"
