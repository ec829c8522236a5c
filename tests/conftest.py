"""Pytest configuration and shared fakes."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chatrelay.llm.provider import CompletionMessage, PlainReply
from chatrelay.services import ProbeError, UploadError


class FakeClock:
    """Manually advanced clock for age-based behaviour."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeTransport:
    """Records everything the dispatcher sends."""

    def __init__(self, events=()):
        self._events = list(events)
        self.sent: list[tuple[str, str]] = []
        self.joined: list[str] = []
        self.left: list[str] = []
        self.disconnected: str | None = None

    async def events(self):
        for event in self._events:
            yield event

    async def send_line(self, target, text):
        self.sent.append((target, text))

    async def join_channel(self, channel):
        self.joined.append(channel)

    async def leave_channel(self, channel):
        self.left.append(channel)

    async def disconnect(self, reason):
        self.disconnected = reason

    def lines_to(self, target):
        return [text for t, text in self.sent if t == target]


class FakeProbe:
    """Answers from a url -> mime map; unknown urls fail."""

    def __init__(self, types=None, gate: asyncio.Event | None = None):
        self.types = dict(types or {})
        self.gate = gate
        self.calls: list[str] = []

    async def probe(self, url):
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if url not in self.types:
            raise ProbeError(f"{url} returned 404")
        return self.types[url]


class FakeSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.saves: list[tuple[str, list]] = []

    async def save(self, channel, turns):
        if self.fail:
            raise OSError("disk full")
        self.saves.append((channel, list(turns)))


class FakeProvider:
    """Completion provider returning a canned reply or raising."""

    def __init__(self, reply="Hello there!", error: Exception | None = None, gate: asyncio.Event | None = None):
        self.reply = reply
        self.error = error
        self.gate = gate
        self.calls: list[dict] = []

    @property
    def name(self):
        return "fake"

    async def complete(self, turns, model=None, temperature=1.0):
        self.calls.append({"turns": list(turns), "model": model, "temperature": temperature})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return PlainReply(CompletionMessage("assistant", self.reply), model or "fake-model")


class FakeUploader:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: list[tuple[bytes, str]] = []

    async def upload(self, data, mime_type):
        if self.fail:
            raise UploadError("Unexpected error uploading")
        self.uploads.append((data, mime_type))
        return f"https://up.example/{len(self.uploads)}"

    async def upload_text(self, text):
        return await self.upload(text.encode("utf-8"), "text/plain; charset=utf-8")


class FakeAudio:
    def __init__(self, text="transcribed words", error: Exception | None = None):
        self.text = text
        self.error = error
        self.spoken: list[str] = []
        self.converted: list[tuple[str, str, str | None]] = []

    async def synthesize(self, text):
        if self.error is not None:
            raise self.error
        self.spoken.append(text)
        return "https://up.example/voice.ogg"

    async def transcribe(self, url, prompt=None):
        return await self._convert("transcribe", url, prompt)

    async def translate(self, url, prompt=None):
        return await self._convert("translate", url, prompt)

    async def _convert(self, kind, url, prompt):
        if self.error is not None:
            raise self.error
        self.converted.append((kind, url, prompt))
        return self.text


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def audio():
    return FakeAudio()
