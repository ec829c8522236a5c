"""OpenAI-compatible completion, speech and transcription client."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import httpx

from ..context import ImagePart, Role, TextPart, Turn
from ..tools.registry import ToolRegistry
from .provider import (
    CompletionMessage,
    CompletionProvider,
    CompletionResult,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMRateLimitError,
    PlainReply,
    ToolReply,
    UsageAccumulator,
)

logger = logging.getLogger("chatrelay.llm.openai")

DEFAULT_SYSTEM_PROMPT = (
    "You are chatbot in an online chat room.  There are multiple people in this "
    "chatroom, their names will appear in angle brackets.  You can answer questions, "
    "or extend the conversation with interesting comments.  Answer with short messages "
    "and do not repeat yourself. Be creative."
)

# OpenAI only accepts [a-zA-Z0-9_-]{1,64} as a participant name
_NAME_INVALID = re.compile(r"[^a-zA-Z0-9_-]")


def _api_name(nick: str) -> str:
    return _NAME_INVALID.sub("_", nick)[:64] or "user"


def _raise_for_status(resp: httpx.Response):
    """Map error statuses onto the LLM exception hierarchy."""
    code = resp.status_code
    if code < 400:
        return
    detail = resp.text[:200]
    logger.error(f"OpenAI API returned {code}: {detail}")
    if code == 429:
        raise LLMRateLimitError(f"Rate limited: {detail}")
    if code in (401, 403):
        raise LLMAuthError(f"HTTP {code}: {detail}")
    if code == 400:
        raise LLMBadRequestError(detail)
    resp.raise_for_status()


class OpenAIProvider(CompletionProvider):
    """OpenAI-compatible API provider.

    Works with any endpoint that speaks the OpenAI REST dialect for
    ``/chat/completions``, ``/audio/speech``, ``/audio/transcriptions``
    and ``/audio/translations``.
    """

    def __init__(
        self,
        api_key: str,
        chat_model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = 4096,
        tts_model: str = "tts-1-hd",
        tts_voice: str = "echo",
        transcription_model: str = "whisper-1",
        tools: Optional[ToolRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.api_key = api_key
        self.chat_model = chat_model
        self.base_url = base_url.rstrip("/")
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.transcription_model = transcription_model
        self.tools = tools or ToolRegistry()
        self._transport = transport
        self._clock = clock

    @property
    def name(self) -> str:
        return "openai"

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _get_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _system_message(self) -> dict:
        today = self._clock().date().isoformat()
        return {
            "role": "system",
            "content": f"{self.system_prompt}. Current date: {today}",
        }

    @staticmethod
    def _format_turns(turns: Sequence[Turn]) -> list[dict]:
        """Convert stored turns to OpenAI message dicts."""
        formatted = []
        for turn in turns:
            if turn.is_multipart:
                content = []
                for part in turn.content:
                    if isinstance(part, TextPart):
                        content.append({"type": "text", "text": part.text})
                    elif isinstance(part, ImagePart):
                        content.append({"type": "image_url", "image_url": {"url": part.url}})
            else:
                content = turn.content
            entry = {"role": turn.role.value, "content": content}
            if turn.role == Role.USER and turn.name:
                entry["name"] = _api_name(turn.name)
            formatted.append(entry)
        return formatted

    async def complete(
        self,
        turns: Sequence[Turn],
        model: Optional[str] = None,
        temperature: float = 1.0,
    ) -> CompletionResult:
        """Request a completion, running at most one round of tool calls."""
        model = model or self.chat_model
        messages = [self._system_message()] + self._format_turns(turns)
        usage = UsageAccumulator()

        logger.info(f"Sending chat completion request ({len(messages)} total messages)")
        logger.debug(f"Last message: {messages[-1]}")

        async with self._client(httpx.Timeout(180.0, connect=10.0)) as client:
            first, resp_model = await self._request(
                client, model, messages, temperature, usage, offer_tools=True,
            )
            if not first.tool_calls:
                logger.info(f"Completion done: model={resp_model}, tokens in/out={usage.input_tokens}/{usage.output_tokens}")
                return PlainReply(first, resp_model, usage)

            results = []
            for tc in first.tool_calls:
                fn = tc.get("function", {})
                try:
                    args = json.loads(fn.get("arguments") or "{}")
                except json.JSONDecodeError:
                    args = {}
                logger.info(f"Tool call: {fn.get('name')}({args})")
                output = await self.tools.execute(fn.get("name", ""), args)
                results.append(CompletionMessage("tool", output, tool_call_id=tc.get("id")))

            follow_up = messages + [
                {"role": "assistant", "content": first.content, "tool_calls": first.tool_calls},
            ] + [
                {"role": "tool", "content": r.content, "tool_call_id": r.tool_call_id}
                for r in results
            ]
            reply, resp_model = await self._request(
                client, model, follow_up, temperature, usage, offer_tools=False,
            )

        logger.info(f"Completion done after tool round: model={resp_model}, tokens in/out={usage.input_tokens}/{usage.output_tokens}")
        return ToolReply(first, results, reply, resp_model, usage)

    async def _request(
        self,
        client: httpx.AsyncClient,
        model: str,
        messages: list[dict],
        temperature: float,
        usage: UsageAccumulator,
        offer_tools: bool,
    ) -> tuple[CompletionMessage, str]:
        body: dict = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if self.max_tokens and self.max_tokens > 0:
            body["max_tokens"] = self.max_tokens
        if offer_tools and len(self.tools):
            body["tools"] = self.tools.to_openai_schema()

        resp = await client.post(
            f"{self.base_url}/chat/completions",
            json=body,
            headers=self._get_headers(),
        )
        _raise_for_status(resp)
        data = resp.json()
        usage.add(data.get("usage"))

        choices = data.get("choices")
        if not choices:
            raise LLMEmptyResponseError("Missing a response")
        msg = choices[0]["message"]
        return (
            CompletionMessage(
                role=msg.get("role", "assistant"),
                content=msg.get("content"),
                tool_calls=msg.get("tool_calls") or None,
            ),
            data.get("model", model),
        )

    async def speech(self, text: str) -> bytes:
        """Synthesize ``text`` as Opus audio."""
        body = {
            "model": self.tts_model,
            "input": text,
            "voice": self.tts_voice,
            "response_format": "opus",
        }
        async with self._client(httpx.Timeout(120.0, connect=10.0)) as client:
            resp = await client.post(
                f"{self.base_url}/audio/speech",
                json=body,
                headers=self._get_headers(),
            )
            _raise_for_status(resp)
            audio = resp.content
        logger.info(f"Synthesized {len(text)} chars -> {len(audio)} bytes")
        return audio

    async def transcribe(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        """Speech to text in the spoken language."""
        return await self._audio_to_text("transcriptions", audio, filename, prompt)

    async def translate(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        """Speech to English text."""
        return await self._audio_to_text("translations", audio, filename, prompt)

    async def _audio_to_text(
        self,
        endpoint: str,
        audio: bytes,
        filename: str,
        prompt: Optional[str],
    ) -> str:
        data = {"model": self.transcription_model, "response_format": "json"}
        if prompt:
            data["prompt"] = prompt
        files = {"file": (filename, audio)}

        async with self._client(httpx.Timeout(120.0, connect=10.0)) as client:
            resp = await client.post(
                f"{self.base_url}/audio/{endpoint}",
                headers=self._get_headers(),
                files=files,
                data=data,
            )
            _raise_for_status(resp)
            result = resp.json()

        text = result.get("text", "").strip()
        if not text:
            raise LLMEmptyResponseError(f"{endpoint.capitalize()} returned empty text")
        logger.info(f"Audio {endpoint}: {len(audio)} bytes -> {len(text)} chars")
        return text
