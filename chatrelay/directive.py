"""Chat directive parsing.

A directive is a chat line asking the agent for a completion. Three forms
are recognized, in this order:

1. ``!chat`` followed by an option block opened with ``/`` or ``:``::

       !chat:temp=0.5,context=no hello world
       !chat/save=no/paste hello

2. ``!chat`` followed by ``--key[=value]`` options::

       !chat --pastebin --temp=3 hello    world

3. The agent addressed by name::

       Charbot9000: hello world

Anything else is not a directive. Option tokens that are malformed or
unknown are ignored, never rejected.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .temperature import parse_temperature

COMMAND_WORD = "!chat"

_TRUE_WORDS = frozenset({"y", "yes", "true", "on"})
_FALSE_WORDS = frozenset({"n", "no", "false", "off"})

_BLOCK_SEPARATORS = re.compile(r"[:,/]")
_BLOCK_SPLIT = re.compile(r"(\S*)\s*(.*)", re.DOTALL)
_WORD = re.compile(r"\S+")


def boolify(value: Optional[str]) -> Optional[bool]:
    """Interpret a loose yes/no token. Unknown or missing values give None."""
    if value is None:
        return None
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return None


@dataclass
class Directive:
    """A parsed ``!chat`` request."""

    message: str
    temperature: float
    # Send the channel history as context, not just the last turn
    use_context: bool = True
    # Store the request and its reply in the channel history
    persist: bool = True
    # Reply with an upload link only
    paste_only: bool = False
    # Reply with synthesized audio
    tts: bool = False

    def apply_option(self, token: str):
        """Apply one ``key`` or ``key=value`` option token in place."""
        key, sep, raw = token.partition("=")
        value = raw if sep else None

        if key == "context":
            flag = boolify(value)
            if flag is not None:
                self.use_context = flag
        elif key == "save":
            flag = boolify(value)
            if flag is not None:
                self.persist = flag
        elif key in ("paste", "pastebin"):
            flag = boolify(value)
            self.paste_only = True if flag is None else flag
        elif key == "temp":
            if value is not None:
                temp = parse_temperature(value)
                if temp is not None:
                    self.temperature = temp
        elif key == "tts":
            flag = boolify(value)
            self.tts = True if flag is None else flag


class DirectiveParser:
    """Turns raw chat lines into :class:`Directive` objects."""

    def __init__(self, agent_name: str, command_word: str = COMMAND_WORD):
        self.agent_name = agent_name
        self.command_word = command_word
        self._address_prefixes = (f"{agent_name}:", f"{agent_name},")

    def parse(self, line: str, default_temperature: float) -> Optional[Directive]:
        """Parse one chat line.

        Args:
            line: Raw line text as received from the channel.
            default_temperature: Temperature used unless a ``temp`` option
                overrides it.

        Returns:
            The directive, or None if the line is not addressed to the agent.
        """
        stripped = line.strip()
        if stripped.startswith(self.command_word):
            data = stripped[len(self.command_word):]
            if not data:
                return Directive(message="", temperature=default_temperature)
            if data[0] in "/:":
                return self._parse_option_block(data[1:], default_temperature)
            if data[0].isspace():
                return self._parse_dashed_options(data, default_temperature)

        for prefix in self._address_prefixes:
            if line.startswith(prefix):
                return Directive(
                    message=line[len(prefix):].strip(),
                    temperature=default_temperature,
                )
        return None

    @staticmethod
    def _parse_option_block(data: str, default_temperature: float) -> Directive:
        directive = Directive(message="", temperature=default_temperature)
        block, rest = _BLOCK_SPLIT.match(data).groups()
        for token in _BLOCK_SEPARATORS.split(block):
            if token:
                directive.apply_option(token)
        directive.message = rest.strip()
        return directive

    @staticmethod
    def _parse_dashed_options(data: str, default_temperature: float) -> Directive:
        directive = Directive(message="", temperature=default_temperature)
        for word in _WORD.finditer(data):
            token = word.group()
            if not token.startswith("--"):
                # Slice the raw text so inner spacing survives
                directive.message = data[word.start():].strip()
                break
            directive.apply_option(token[2:])
        return directive


def trim_agent_name(reply: str, agent_name: str) -> str:
    """Strip a leading ``Name:`` or ``<Name>`` the model echoed back."""
    reply = reply.lstrip()
    for prefix in (f"{agent_name}:", f"<{agent_name}>"):
        if reply.startswith(prefix):
            return reply[len(prefix):].strip()
    return reply.strip()
