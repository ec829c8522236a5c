"""Channel history persistence: one pretty-printed JSON file per channel."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Union

from .context import Turn

logger = logging.getLogger("chatrelay.storage")


class JsonFileSink:
    """Writes ``<history_dir>/<channel>.json`` after every context change."""

    def __init__(self, history_dir: Union[str, Path] = "."):
        self.history_dir = Path(history_dir).expanduser()

    def path_for(self, channel: str) -> Path:
        safe = channel.replace(os.sep, "_").replace("\0", "_")
        return self.history_dir / f"{safe}.json"

    async def save(self, channel: str, turns: list[Turn]):
        """Serialize the full turn list for ``channel``."""
        payload = [turn.to_dict() for turn in turns]
        await asyncio.to_thread(self._write, self.path_for(channel), payload)
        logger.debug(f"Saved {len(payload)} turns for {channel}")

    async def load(self, channel: str) -> list[Turn]:
        """Read the turns saved for ``channel``; empty if nothing was saved."""
        path = self.path_for(channel)
        if not path.exists():
            return []
        payload = await asyncio.to_thread(self._read, path)
        return [Turn.from_dict(item) for item in payload]

    def saved_channels(self) -> list[str]:
        """Channels and nicks that have a history file, sorted by name."""
        if not self.history_dir.is_dir():
            return []
        return sorted(path.stem for path in self.history_dir.glob("*.json") if path.is_file())

    def count(self, channel: str) -> int:
        """Number of turns on disk for ``channel`` (0 if missing or unreadable)."""
        path = self.path_for(channel)
        if not path.exists():
            return 0
        try:
            return len(self._read(path))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable history file {path}: {e}")
            return 0

    def _write(self, path: Path, payload: list):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    @staticmethod
    def _read(path: Path) -> list:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"expected a list of turns in {path.name}")
        return data
