"""IRC channel adapter on top of the ``irc`` package's asyncio reactor."""

import asyncio
import logging
from typing import AsyncIterator, Optional

import irc.client
import irc.client_aio
import irc.connection

from .base import ChatTransport, LineEvent

logger = logging.getLogger("chatrelay.irc")


class IrcTransport(ChatTransport):
    """Connects to one IRC server and turns PRIVMSGs into :class:`LineEvent`.

    Reactor callbacks run on the event loop and only enqueue; consumers
    read lines in order through :meth:`events`.
    """

    def __init__(
        self,
        server: str,
        port: int,
        nickname: str,
        channels: Optional[list[str]] = None,
        use_tls: bool = True,
    ):
        self.server = server
        self.port = port
        self.nickname = nickname
        self.channels = list(channels or [])
        self.use_tls = use_tls
        self._queue: asyncio.Queue = asyncio.Queue()
        self._reactor: Optional[irc.client_aio.AioReactor] = None
        self._conn: Optional[irc.client_aio.AioConnection] = None

    async def connect(self):
        """Open the connection and register. Channels are joined on welcome."""
        self._reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
        self._reactor.add_global_handler("welcome", self._on_welcome)
        self._reactor.add_global_handler("pubmsg", self._on_pubmsg)
        self._reactor.add_global_handler("privmsg", self._on_privmsg)
        self._reactor.add_global_handler("error", self._on_error)
        self._reactor.add_global_handler("disconnect", self._on_disconnect)

        factory = irc.connection.AioFactory(ssl=self.use_tls)
        self._conn = self._reactor.server()
        logger.info(f"Connecting to {self.server}:{self.port} as {self.nickname} (tls={self.use_tls})")
        await self._conn.connect(
            self.server,
            self.port,
            self.nickname,
            connect_factory=factory,
        )
        # Don't die on a stray latin-1 byte
        self._conn.buffer.errors = "replace"

    # ── reactor callbacks ───────────────────────────────────

    def _on_welcome(self, connection, event):
        logger.info(f"Registered with {self.server}")
        for channel in self.channels:
            connection.join(channel)

    def _on_pubmsg(self, connection, event):
        self._enqueue(connection, event, event.target)

    def _on_privmsg(self, connection, event):
        # Private replies go back to the sender
        self._enqueue(connection, event, event.source.nick)

    def _enqueue(self, connection, event, channel: str):
        if not event.source or not event.arguments:
            return
        nick = event.source.nick
        self._queue.put_nowait(LineEvent(
            channel=channel,
            sender=nick,
            text=event.arguments[0],
            sender_is_self=nick == connection.get_nickname(),
        ))

    def _on_error(self, connection, event):
        logger.error(f"IRC error from server: {' '.join(event.arguments)}")
        self._queue.put_nowait(None)

    def _on_disconnect(self, connection, event):
        logger.info("Disconnected from IRC")
        self._queue.put_nowait(None)

    # ── ChatTransport ───────────────────────────────────────

    async def events(self) -> AsyncIterator[LineEvent]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item

    async def send_line(self, target: str, text: str):
        if self._conn is None or not self._conn.is_connected():
            logger.warning(f"Dropping line to {target}: not connected")
            return
        try:
            self._conn.privmsg(target, text)
        except irc.client.MessageTooLong:
            logger.warning(f"Line to {target} too long for IRC, truncating")
            self._conn.privmsg(target, text.encode("utf-8")[:400].decode("utf-8", "ignore"))

    async def join_channel(self, channel: str):
        if channel not in self.channels:
            self.channels.append(channel)
        if self._conn is not None:
            self._conn.join(channel)

    async def leave_channel(self, channel: str):
        if channel in self.channels:
            self.channels.remove(channel)
        if self._conn is not None:
            self._conn.part(channel)

    async def disconnect(self, reason: str):
        if self._conn is not None and self._conn.is_connected():
            self._conn.disconnect(reason)
