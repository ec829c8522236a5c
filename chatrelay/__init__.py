"""Chatrelay: IRC chat-room relay for generative completions."""

__version__ = "0.1.0"
