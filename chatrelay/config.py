"""Chatrelay configuration management."""

import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .llm.openai import DEFAULT_SYSTEM_PROMPT
from .services.upload import DEFAULT_UPLOAD_URL

logger = logging.getLogger("chatrelay.config")


class RelaySettings(BaseSettings):
    """Settings loaded from environment variables or .env file.

    List values (channels, owners, ...) are given as JSON, e.g.
    ``CHATRELAY_CHANNELS='["#overviewer", "##em32"]'``.
    """

    # IRC
    irc_server: str = Field(default="irc.libera.chat", description="IRC server host")
    irc_port: int = Field(default=6697, description="IRC server port")
    irc_tls: bool = Field(default=True, description="Connect with TLS")
    nickname: str = Field(default="Charbot9000", description="Agent nick, also the address prefix")
    channels: list[str] = Field(default_factory=list, description="Channels joined on connect")
    owners: list[str] = Field(default_factory=list, description="Nicks allowed to join/part/quit")
    ignore_nicks: list[str] = Field(default_factory=list, description="Bots that are never listened to")
    capture_nicks: list[str] = Field(
        default_factory=list,
        description="Nicks whose every channel line is kept as context",
    )

    # Completion service
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI-compatible base URL")
    chat_model: str = Field(default="gpt-4o", description="Chat completion model")
    max_tokens: int = Field(default=4096, description="Completion token limit")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="Chat room persona")

    # Audio
    tts_model: str = Field(default="tts-1-hd", description="Speech synthesis model")
    tts_voice: str = Field(default="echo", description="Speech synthesis voice")
    transcription_model: str = Field(default="whisper-1", description="Speech-to-text model")

    # Upload host
    upload_url: str = Field(default=DEFAULT_UPLOAD_URL, description="PUT endpoint returning a public URL")

    # Storage
    history_dir: str = Field(default=".", description="Directory for <channel>.json history files")

    # Behaviour
    initial_temperature: float = Field(default=1.0, description="Starting sampling temperature")

    # Logging
    log_file: str = Field(default="~/chatrelay.log", description="Log file path")
    debug: bool = Field(default=False, description="Debug logging")

    model_config = {"env_prefix": "CHATRELAY_", "env_file": ".env", "extra": "ignore"}


def load_settings() -> RelaySettings:
    """Load settings from environment."""
    settings = RelaySettings()

    if not settings.openai_api_key:
        logger.warning(
            "No OpenAI API key configured (CHATRELAY_OPENAI_API_KEY). "
            "Every completion request will fail."
        )
    if not settings.irc_tls:
        logger.warning(f"TLS disabled: talking to {settings.irc_server} in plain text.")
    if not settings.owners:
        logger.warning("No owners configured; !join, !part and !quit are unavailable.")

    return settings
