"""Dispatch coordinator: decides what each chat line does.

Per line, in order:

1. Lines from ourselves or from ignored bots are dropped.
2. Admin commands (echo, temperature, join/part, quit, clearctx) are
   answered on the spot.
3. Audio commands (tts, translate, transcribe) start a background task.
4. Directives update the context store and start a completion task.
5. Anything else from an opted-in nick in a room is captured as context.

Steps 1-5 finish before the next line is read. Completion and audio tasks
run concurrently and report failures back to the chat; nothing is retried.
"""

import asyncio
import logging
import math
from enum import Enum
from typing import Iterable, Optional

from .channels.base import ChatTransport, LineEvent
from .communication.errors import classify_error
from .communication.outbound import send_possibly_long_message
from .context import ContextStore, Turn
from .directive import Directive, DirectiveParser, trim_agent_name
from .llm.provider import CompletionProvider, reply_texts
from .temperature import AtomicFloat, clamp_temperature, parse_float

logger = logging.getLogger("chatrelay.dispatcher")

FAREWELL = "Bye"


class Outcome(Enum):
    IGNORED = "ignored"
    ADMIN = "admin"
    SERVICE = "service"
    COMPLETION = "completion"
    CAPTURED = "captured"
    NONE = "none"
    QUIT = "quit"


class Dispatcher:
    """Routes chat lines between the transport, the store and the services."""

    def __init__(
        self,
        transport: ChatTransport,
        store: ContextStore,
        provider: CompletionProvider,
        uploader,
        audio,
        parser: DirectiveParser,
        temperature: AtomicFloat,
        owners: Iterable[str] = (),
        ignore_nicks: Iterable[str] = (),
        capture_nicks: Iterable[str] = (),
        model: Optional[str] = None,
    ):
        self.transport = transport
        self.store = store
        self.provider = provider
        self.uploader = uploader
        self.audio = audio
        self.parser = parser
        self.temperature = temperature
        self.owners = frozenset(owners)
        self.ignore_nicks = frozenset(ignore_nicks)
        self.capture_nicks = frozenset(capture_nicks)
        self.model = model
        self._tasks: set[asyncio.Task] = set()

    @property
    def agent_name(self) -> str:
        return self.parser.agent_name

    # ── event loop ──────────────────────────────────────────

    async def serve(self):
        """Consume transport events until quit or disconnect."""
        async for event in self.transport.events():
            try:
                outcome = await self.handle(event)
            except Exception as e:
                logger.error(f"Error handling line from {event.sender} in {event.channel}: {e}", exc_info=True)
                continue
            if outcome is Outcome.QUIT:
                logger.info(f"Quit requested by {event.sender}")
                await self.transport.disconnect(FAREWELL)
                break
        logger.info(f"Stopped reading events ({len(self._tasks)} tasks still running)")

    async def handle(self, event: LineEvent) -> Outcome:
        """Process one line. Returns what was done with it."""
        if event.sender_is_self or event.sender in self.ignore_nicks:
            # Never listen to other bots, to prevent loops
            return Outcome.IGNORED

        outcome = await self._handle_admin(event)
        if outcome is not None:
            return outcome

        if await self._handle_audio_command(event):
            return Outcome.SERVICE

        directive = self.parser.parse(event.text, self.temperature.load())
        if directive is not None:
            logger.debug(f"Directive from {event.sender} in {event.channel}: {directive}")
            await self._start_completion(event, directive)
            return Outcome.COMPLETION

        if event.is_broadcast and event.sender in self.capture_nicks:
            await self.store.insert_user_turn(event.channel, event.sender, event.text)
            return Outcome.CAPTURED

        return Outcome.NONE

    async def drain(self):
        """Wait for every background task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro, label: str):
        task = asyncio.create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}", exc_info=exc)

    # ── admin commands ──────────────────────────────────────

    async def _handle_admin(self, event: LineEvent) -> Optional[Outcome]:
        text = event.text
        target = event.channel

        if event.sender in self.owners:
            if "go quit" in text or text.startswith("!quit"):
                return Outcome.QUIT
            if text.startswith("!join "):
                channel = text[len("!join "):].strip()
                logger.info(f"Joining {channel} (requested by {event.sender})")
                await self.transport.join_channel(channel)
                return Outcome.ADMIN
            if text.startswith("!part "):
                channel = text[len("!part "):].strip()
                logger.info(f"Leaving {channel} (requested by {event.sender})")
                await self.transport.leave_channel(channel)
                return Outcome.ADMIN

        if text.startswith("!echo "):
            await self.transport.send_line(target, text[len("!echo "):].strip())
            return Outcome.ADMIN
        if text.startswith("!set_temp "):
            await self._set_temperature(target, text[len("!set_temp "):].strip())
            return Outcome.ADMIN
        if text.startswith("!get_temp"):
            await self.transport.send_line(target, f"Current global temp is {self.temperature.load()}")
            return Outcome.ADMIN
        if text.startswith("!clearctx"):
            await self.store.clear(target)
            await self.transport.send_line(target, f"Clearing list of saved context for {target}")
            return Outcome.ADMIN
        return None

    async def _set_temperature(self, target: str, raw: str):
        value = parse_float(raw)
        if value is None:
            await self.transport.send_line(target, f"Failed to parse '{raw}' as a float")
            return
        if not math.isfinite(value):
            await self.transport.send_line(target, "What are you trying to do?")
            return
        value = clamp_temperature(value)
        self.temperature.store(value)
        logger.info(f"Temperature set to {value}")
        await self.transport.send_line(target, f"Temperature is now {value}")

    # ── audio commands ──────────────────────────────────────

    async def _handle_audio_command(self, event: LineEvent) -> bool:
        text = event.text
        if text.startswith("!tts "):
            self._spawn(self._speak(event, text[len("!tts "):]), f"tts:{event.channel}")
            return True
        for command in ("!translate ", "!transcribe "):
            if text.startswith(command):
                url, _, prompt = text[len(command):].strip().partition(" ")
                if not url.startswith("https://"):
                    await self.transport.send_line(event.channel, f"Usage: {command.strip()} <https-url> [prompt]")
                    return True
                self._spawn(
                    self._speech_to_text(event, command.strip(), url, prompt.strip() or None),
                    f"{command.strip()}:{event.channel}",
                )
                return True
        return False

    async def _speak(self, event: LineEvent, text: str):
        try:
            url = await self.audio.synthesize(text)
        except Exception as e:
            logger.error(f"Speech synthesis failed for {event.sender}: {e}")
            await self.transport.send_line(event.channel, f"Error: {classify_error(e)}")
            return
        await self.transport.send_line(event.channel, url)

    async def _speech_to_text(self, event: LineEvent, command: str, url: str, prompt: Optional[str]):
        convert = self.audio.translate if command == "!translate" else self.audio.transcribe
        try:
            text = await convert(url, prompt)
        except Exception as e:
            logger.error(f"{command} of {url} failed: {e}")
            await self.transport.send_line(event.channel, f"Error: {classify_error(e)}")
            return
        await send_possibly_long_message(self.transport, event.channel, text, self.uploader)

    # ── completions ─────────────────────────────────────────

    async def _start_completion(self, event: LineEvent, directive: Directive):
        message = directive.message.strip()
        if directive.persist and message:
            await self.store.insert_user_turn(event.channel, event.sender, message)

        turns = self.store.get_turns_for_request(event.channel, directive.use_context)
        if not directive.persist:
            # Not in the store, so it has to be sent explicitly
            turns.append(await self.store.build_user_turn(event.sender, message))

        self._spawn(
            self._complete(event, directive, turns),
            f"completion:{event.channel}:{event.sender}",
        )

    async def _complete(self, event: LineEvent, directive: Directive, turns: list[Turn]):
        nick = event.sender
        target = event.channel
        try:
            result = await self.provider.complete(turns, self.model, directive.temperature)
        except Exception as e:
            logger.error(f"Error getting chat for {nick} in {target}: {e}")
            await self.transport.send_line(target, f"{nick}: Error getting chat: {classify_error(e)}")
            return

        texts = reply_texts(result)
        if directive.persist:
            await self.store.insert_agent_turns(target, texts)

        # Every message is stored, but only the final one goes back to chat
        reply = result.reply.content
        if not reply:
            logger.warning(f"Completion for {nick} in {target} had no text")
            return

        try:
            if directive.paste_only:
                url = await self.uploader.upload_text(reply)
                await self.transport.send_line(target, f"{nick}: {url}")
            elif directive.tts:
                url = await self.audio.synthesize(reply)
                await self.transport.send_line(target, f"{nick}: {url}")
            else:
                await send_possibly_long_message(
                    self.transport, target, trim_agent_name(reply, self.agent_name), self.uploader,
                )
        except Exception as e:
            logger.error(f"Error delivering reply to {nick} in {target}: {e}")
            await self.transport.send_line(target, f"{nick}: Error delivering reply: {classify_error(e)}")
