"""Per-channel conversation memory.

Each channel keeps an ordered log of :class:`Turn` objects. Turns older
than 48 hours are evicted from the front after every insert. Image parts
older than an hour are left out of what gets sent to the completion
service, but stay in storage.

All state sits behind one ``threading.Lock``. Nothing that waits on the
network or disk runs while it is held: URL probing happens before the lock
is taken and persistence happens after it is released.
"""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Union

logger = logging.getLogger("chatrelay.context")

MAX_TURN_AGE = timedelta(hours=48)
IMAGE_MAX_AGE = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    AGENT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    url: str


Part = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class Turn:
    """One stored conversation entry.

    ``content`` is either plain text or a tuple of parts; the tuple form is
    only used when the message referenced images.
    """

    created_at: datetime
    role: Role
    content: Union[str, tuple]
    name: Optional[str] = None

    @property
    def is_multipart(self) -> bool:
        return not isinstance(self.content, str)

    @property
    def text(self) -> str:
        """Text of the turn, joining text parts for multipart content."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def for_request(self, now: datetime) -> "Turn":
        """Return the turn as it should be sent at ``now``.

        Multipart turns older than an hour lose their image parts.
        """
        if not self.is_multipart or self.age(now) <= IMAGE_MAX_AGE:
            return self
        text_only = tuple(p for p in self.content if isinstance(p, TextPart))
        return Turn(self.created_at, self.role, text_only, self.name)

    def to_dict(self) -> dict:
        if isinstance(self.content, str):
            content = self.content
        else:
            content = []
            for part in self.content:
                if isinstance(part, TextPart):
                    content.append({"type": "text", "text": part.text})
                else:
                    content.append({"type": "image_url", "url": part.url})
        data = {
            "date": self.created_at.isoformat(),
            "role": self.role.value,
            "content": content,
        }
        if self.name:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        """Rebuild a turn saved by :meth:`to_dict`.

        Raises:
            ValueError: ``data`` does not have the saved turn shape.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a turn object, got {type(data).__name__}")
        raw = data["content"]
        if isinstance(raw, str):
            content = raw
        elif isinstance(raw, list):
            parts = []
            for item in raw:
                if not isinstance(item, dict):
                    raise ValueError(f"expected a content part object, got {type(item).__name__}")
                if item.get("type") == "image_url":
                    parts.append(ImagePart(item["url"]))
                else:
                    parts.append(TextPart(item.get("text", "")))
            content = tuple(parts)
        else:
            raise ValueError(f"unsupported turn content {type(raw).__name__}")
        if not isinstance(data["date"], str):
            raise ValueError("turn date must be an ISO 8601 string")
        created_at = datetime.fromisoformat(data["date"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            created_at=created_at,
            role=Role(data["role"]),
            content=content,
            name=data.get("name"),
        )


def find_secure_urls(text: str) -> list[str]:
    """Whitespace-delimited tokens that start with ``https://``."""
    return [word for word in text.split() if word.startswith("https://")]


class ContextStore:
    """Thread-safe map of channel name to ordered turns."""

    def __init__(
        self,
        probe=None,
        sink=None,
        clock: Callable[[], datetime] = utc_now,
        max_age: timedelta = MAX_TURN_AGE,
    ):
        """
        Args:
            probe: Object with ``async probe(url) -> mime type``. Without one,
                URLs are never treated as images.
            sink: Object with ``async save(channel, turns)``. Without one,
                nothing is persisted.
            clock: Returns the current aware datetime.
            max_age: Turns older than this are evicted on insert.
        """
        self._probe = probe
        self._sink = sink
        self._clock = clock
        self.max_age = max_age
        self._logs: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._revision: dict[str, int] = {}
        self._saved_revision: dict[str, int] = {}
        self._save_locks: dict[str, asyncio.Lock] = {}

    # ── building turns ──────────────────────────────────────

    async def _image_urls(self, urls: Iterable[str]) -> list[str]:
        images = []
        if self._probe is None:
            return images
        for url in urls:
            try:
                mime = await self._probe.probe(url)
            except Exception as e:
                logger.debug(f"Content type probe failed for {url}: {e}")
                continue
            if mime.startswith("image/"):
                images.append(url)
        return images

    async def build_user_content(self, sender: str, text: str) -> Union[str, tuple]:
        """Render a room member's line, attaching any image URLs it contains."""
        rendered = f"<{sender}> {text}"
        urls = find_secure_urls(text)
        if not urls:
            return rendered
        images = await self._image_urls(urls)
        if not images:
            return rendered
        return (TextPart(rendered),) + tuple(ImagePart(url) for url in images)

    async def build_user_turn(self, sender: str, text: str) -> Turn:
        """Build a user turn without storing it."""
        content = await self.build_user_content(sender, text)
        return Turn(self._clock(), Role.USER, content, sender)

    # ── mutation ────────────────────────────────────────────

    async def insert_user_turn(self, channel: str, sender: str, text: str) -> Turn:
        """Append a room member's line to ``channel`` and return the stored turn."""
        content = await self.build_user_content(sender, text)
        with self._lock:
            turn = Turn(self._clock(), Role.USER, content, sender)
            revision, snapshot = self._append_locked(channel, [turn])
        await self._persist(channel, revision, snapshot)
        return turn

    async def insert_agent_turns(self, channel: str, texts: Sequence[str]) -> list[Turn]:
        """Append the agent's reply messages to ``channel`` as one event."""
        if not texts:
            return []
        with self._lock:
            now = self._clock()
            turns = [Turn(now, Role.AGENT, text) for text in texts]
            revision, snapshot = self._append_locked(channel, turns)
        await self._persist(channel, revision, snapshot)
        return turns

    async def clear(self, channel: str):
        """Forget everything stored for ``channel``."""
        with self._lock:
            log = self._logs.get(channel)
            if log is None:
                return
            log.clear()
            revision = self._bump_locked(channel)
        logger.info(f"Cleared context for {channel}")
        await self._persist(channel, revision, [])

    def restore(self, channel: str, turns: Iterable[Turn]):
        """Seed ``channel`` with previously persisted turns (startup only)."""
        ordered = sorted(turns, key=lambda t: t.created_at)
        with self._lock:
            log = self._logs.setdefault(channel, deque())
            log.extend(ordered)
            self._evict_locked(log)
            count = len(log)
        logger.info(f"Restored {count} turns for {channel}")

    def _append_locked(self, channel: str, turns: list) -> tuple:
        log = self._logs.setdefault(channel, deque())
        log.extend(turns)
        self._evict_locked(log)
        return self._bump_locked(channel), list(log)

    def _bump_locked(self, channel: str) -> int:
        revision = self._revision.get(channel, 0) + 1
        self._revision[channel] = revision
        return revision

    def _evict_locked(self, log: deque):
        now = self._clock()
        dropped = 0
        while log and log[0].age(now) > self.max_age:
            log.popleft()
            dropped += 1
        if dropped:
            logger.debug(f"Evicted {dropped} expired turns")

    # ── reads ───────────────────────────────────────────────

    def get_turns_for_request(self, channel: str, include_all_context: bool) -> list[Turn]:
        """Turns to send for a completion request.

        Args:
            channel: Channel name.
            include_all_context: Full history if true, else only the newest turn.
        """
        with self._lock:
            log = self._logs.get(channel)
            if not log:
                return []
            selected = list(log) if include_all_context else [log[-1]]
        now = self._clock()
        return [turn.for_request(now) for turn in selected]

    def snapshot(self, channel: str) -> list[Turn]:
        """Stored turns for ``channel`` exactly as kept."""
        with self._lock:
            return list(self._logs.get(channel, ()))

    def channels(self) -> list[str]:
        with self._lock:
            return list(self._logs)

    # ── persistence ─────────────────────────────────────────

    async def _persist(self, channel: str, revision: int, turns: list):
        if self._sink is None:
            return
        lock = self._save_locks.setdefault(channel, asyncio.Lock())
        async with lock:
            if revision <= self._saved_revision.get(channel, 0):
                # A newer snapshot was written while this one waited
                return
            try:
                await self._sink.save(channel, turns)
            except Exception as e:
                logger.warning(f"Failed to persist context for {channel}: {e}")
                return
            self._saved_revision[channel] = revision
