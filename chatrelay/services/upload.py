"""Content upload: PUT bytes to a paste host, get a URL back."""

import logging
from typing import Optional

import httpx

from . import UploadError

logger = logging.getLogger("chatrelay.services.upload")

DEFAULT_UPLOAD_URL = "https://up.em32.site"
TEXT_MIME = "text/plain; charset=utf-8"


class ContentUploader:
    """Uploads content to a host that answers a PUT with the public URL."""

    def __init__(
        self,
        upload_url: str = DEFAULT_UPLOAD_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.upload_url = upload_url
        self._transport = transport

    async def upload(self, data: bytes, mime_type: str) -> str:
        """Upload ``data`` and return its URL.

        Raises:
            UploadError: The host failed or answered with something other
                than an https URL.
        """
        try:
            async with httpx.AsyncClient(timeout=60, transport=self._transport) as client:
                resp = await client.put(
                    self.upload_url,
                    content=data,
                    headers={"Content-Type": mime_type},
                )
        except httpx.HTTPError as e:
            raise UploadError(f"Failed to upload content: {e}") from e

        if resp.status_code >= 400:
            raise UploadError(f"Upload host returned HTTP {resp.status_code}")

        url = resp.text.strip()
        if not url.startswith("https://"):
            logger.error(f"Unexpected upload response: {url[:200]}")
            raise UploadError("Unexpected error uploading")

        logger.info(f"Uploaded {len(data)} bytes ({mime_type}) -> {url}")
        return url

    async def upload_text(self, text: str) -> str:
        return await self.upload(text.encode("utf-8"), TEXT_MIME)
