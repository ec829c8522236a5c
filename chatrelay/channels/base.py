"""Chat transport contract: the dispatcher never sees protocol frames."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

BROADCAST_PREFIXES = ("#", "&")


@dataclass(frozen=True)
class LineEvent:
    """One chat line.

    ``channel`` is where the line was said and where replies go: the channel
    name for room messages, the sender's nick for private ones.
    """

    channel: str
    sender: str
    text: str
    sender_is_self: bool = False

    @property
    def is_broadcast(self) -> bool:
        return self.channel.startswith(BROADCAST_PREFIXES)


class ChatTransport(ABC):
    """Abstract base class for chat networks."""

    @abstractmethod
    def events(self) -> AsyncIterator[LineEvent]:
        """Yield incoming lines in arrival order until the connection ends."""
        ...

    @abstractmethod
    async def send_line(self, target: str, text: str):
        """Send one line of text to a channel or nick."""
        ...

    @abstractmethod
    async def join_channel(self, channel: str):
        ...

    @abstractmethod
    async def leave_channel(self, channel: str):
        ...

    @abstractmethod
    async def disconnect(self, reason: str):
        """Say goodbye and close the connection."""
        ...
