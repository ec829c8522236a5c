"""Chatrelay: Main entry point."""

import asyncio
import logging
import os

from .channels.irc import IrcTransport
from .config import RelaySettings, load_settings
from .context import ContextStore
from .directive import DirectiveParser
from .dispatcher import Dispatcher
from .llm.openai import OpenAIProvider
from .services.audio import AudioService
from .services.probe import ContentTypeProbe
from .services.upload import ContentUploader
from .storage import JsonFileSink
from .temperature import init_temperature

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logging.basicConfig(
    level=logging.INFO,
    format=_log_format,
    handlers=[logging.StreamHandler()],                  # stderr (console)
)
logger = logging.getLogger("chatrelay")


def _add_file_logging(settings: RelaySettings):
    """Apply the debug level and mirror the log to the configured file."""
    if settings.debug:
        logger.setLevel(logging.DEBUG)
    log_file = os.path.expanduser(settings.log_file)
    try:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        logger.warning(f"Cannot open log file {log_file}: {e}")
        return
    handler.setFormatter(logging.Formatter(_log_format))
    logging.getLogger().addHandler(handler)


async def restore_history(store: ContextStore, sink: JsonFileSink, channels: list[str]):
    """Load persisted turns into ``store``.

    Covers ``channels`` plus every channel or nick with a history file, so
    rooms joined at runtime and private chats keep their context.
    """
    for channel in dict.fromkeys([*channels, *sink.saved_channels()]):
        try:
            turns = await sink.load(channel)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Skipping unreadable history for {channel}: {e}")
            continue
        if turns:
            store.restore(channel, turns)


def build_dispatcher(settings: RelaySettings, transport) -> tuple[Dispatcher, JsonFileSink]:
    """Wire services, store and transport together."""
    temperature = init_temperature(settings.initial_temperature)
    uploader = ContentUploader(settings.upload_url)
    provider = OpenAIProvider(
        api_key=settings.openai_api_key or "",
        chat_model=settings.chat_model,
        base_url=settings.openai_base_url,
        system_prompt=f"{settings.system_prompt} Your own name is '{settings.nickname}'",
        max_tokens=settings.max_tokens,
        tts_model=settings.tts_model,
        tts_voice=settings.tts_voice,
        transcription_model=settings.transcription_model,
    )
    sink = JsonFileSink(settings.history_dir)
    store = ContextStore(probe=ContentTypeProbe(), sink=sink)
    dispatcher = Dispatcher(
        transport=transport,
        store=store,
        provider=provider,
        uploader=uploader,
        audio=AudioService(provider, uploader),
        parser=DirectiveParser(settings.nickname),
        temperature=temperature,
        owners=settings.owners,
        ignore_nicks=settings.ignore_nicks,
        capture_nicks=settings.capture_nicks,
        model=settings.chat_model,
    )
    return dispatcher, sink


async def run():
    """Main run loop."""
    settings = load_settings()
    _add_file_logging(settings)

    transport = IrcTransport(
        server=settings.irc_server,
        port=settings.irc_port,
        nickname=settings.nickname,
        channels=settings.channels,
        use_tls=settings.irc_tls,
    )
    dispatcher, sink = build_dispatcher(settings, transport)

    try:
        await restore_history(dispatcher.store, sink, settings.channels)
        await transport.connect()
        logger.info("Chatrelay is running. Say !quit (as an owner) to stop.")
        await dispatcher.serve()
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await transport.disconnect("Bye")


def main():
    """Entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
