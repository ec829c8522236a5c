"""Speech synthesis and speech-to-text for chat commands."""

import logging
from typing import Optional

import httpx

from . import AudioSourceError
from .probe import USER_AGENT
from .upload import ContentUploader

logger = logging.getLogger("chatrelay.services.audio")


class AudioService:
    """Glues the completion provider's audio endpoints to URLs.

    ``provider`` must offer ``speech(text) -> bytes`` and
    ``transcribe``/``translate(audio, filename, prompt) -> str``.
    """

    def __init__(
        self,
        provider,
        uploader: ContentUploader,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.uploader = uploader
        self._transport = transport

    async def synthesize(self, text: str) -> str:
        """Speak ``text`` and return a URL to the uploaded Ogg/Opus file."""
        audio = await self.provider.speech(text)
        url = await self.uploader.upload(audio, "audio/ogg")
        return f"{url}.ogg"

    async def transcribe(self, audio_url: str, prompt: Optional[str] = None) -> str:
        audio, filename = await self._download(audio_url)
        return await self.provider.transcribe(audio, filename, prompt)

    async def translate(self, audio_url: str, prompt: Optional[str] = None) -> str:
        audio, filename = await self._download(audio_url)
        return await self.provider.translate(audio, filename, prompt)

    async def _download(self, audio_url: str) -> tuple[bytes, str]:
        filename = audio_url.rsplit("/", 1)[-1] or "unknown.ogg"
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=2.0),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            resp = await client.get(audio_url)
            resp.raise_for_status()

        content_type = resp.headers.get("content-type", "")
        if not content_type.startswith(("audio/", "video/")):
            raise AudioSourceError("Content type is not audio")

        logger.debug(f"Downloaded {len(resp.content)} bytes of {content_type} from {audio_url}")
        return resp.content, filename
