"""Content-type probing for URLs posted in chat."""

import logging
from typing import Optional

import httpx

from .. import __version__
from . import ProbeError

logger = logging.getLogger("chatrelay.services.probe")

USER_AGENT = f"chatrelay/{__version__}"


class ContentTypeProbe:
    """Finds the media type of a URL, trying HEAD before GET."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, connect=2.0),
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=self._transport,
        )

    async def probe(self, url: str) -> str:
        """Return the Content-Type of ``url``.

        A HEAD request is tried first. A 404 answer is final; any other
        failure falls back to a GET whose body is never read.

        Raises:
            ProbeError: No content type could be determined.
        """
        async with self._client() as client:
            try:
                resp = await client.head(url)
            except httpx.HTTPError as e:
                logger.debug(f"HEAD {url} failed: {e}")
            else:
                content_type = resp.headers.get("content-type")
                if resp.is_success and content_type:
                    return content_type
                if resp.status_code == 404:
                    raise ProbeError(f"{url} returned 404")
                logger.debug(f"HEAD {url} gave {resp.status_code}, retrying with GET")

            try:
                async with client.stream("GET", url) as resp:
                    content_type = resp.headers.get("content-type")
            except httpx.HTTPError as e:
                raise ProbeError(f"GET {url} failed: {e}") from e

        if not content_type:
            raise ProbeError("Failed to get content type")
        return content_type
