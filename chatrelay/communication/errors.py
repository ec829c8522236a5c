"""Error classification for user-facing chat messages."""

import asyncio
import httpx

from ..llm.provider import LLMRateLimitError, LLMAuthError, LLMBadRequestError, LLMEmptyResponseError
from ..services import AudioSourceError, ProbeError, UploadError


def classify_error(e: Exception) -> str:
    """Classify any exception into a short message for the chat.

    Returns a single sentence suitable for sending straight back to the
    requester; the full exception goes to the log.
    """
    # 1-4: Typed LLM exceptions
    if isinstance(e, LLMRateLimitError):
        return "Rate limited. Please wait a moment and try again."
    if isinstance(e, LLMAuthError):
        return "Authentication error. Owner may need to check the API key."
    if isinstance(e, LLMBadRequestError):
        return "Request rejected. The context may be too large, try !clearctx."
    if isinstance(e, LLMEmptyResponseError):
        return "Empty response. Please try again."

    # 5-7: Collaborator failures
    if isinstance(e, UploadError):
        return f"Upload failed: {e}"
    if isinstance(e, AudioSourceError):
        return f"{e}"
    if isinstance(e, ProbeError):
        return f"Could not inspect link: {e}"

    # 8: httpx HTTP status errors
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if 500 <= code < 600:
            return "Service is having server issues. Please try again later."
        return f"Service returned HTTP {code}."

    # 9-10: Network / timeout errors
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to the service. Please try again."
    if isinstance(e, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Request timed out. Please try again."

    # 11: Unexpected response shape
    if isinstance(e, (KeyError, IndexError, ValueError)):
        return "Unexpected response format. Please try again."

    # 12: Fallback: include type name for debugging
    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Check logs for details."
