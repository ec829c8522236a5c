"""Outbound reply formatting for line-based chat.

Replies are split on newlines (blank lines dropped), wrapped at 400
columns and cleaned of control characters. Each wrapped line costs
``1 + ceil(len / 150)``; once the running cost passes the budget of 8 the
rest of the reply is uploaded and a link is sent instead.
"""

import logging
import math
import re
import textwrap

logger = logging.getLogger("chatrelay.communication.outbound")

WRAP_WIDTH = 400
LINE_BUDGET = 8
CHARS_PER_WEIGHT = 150

# ASCII control characters other than \t \n \f \r
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")

OVERFLOW_MESSAGE = "(there were more lines in the reply, read more at {url})"
OVERFLOW_FAILED_MESSAGE = (
    "(there were more lines in the reply, but there was an error uploading the content)"
)


def strip_control_chars(text: str) -> str:
    return _CONTROL_RE.sub("", text)


def split_long_message(text: str, width: int = WRAP_WIDTH) -> list[str]:
    """Split a reply into sendable lines."""
    lines = []
    for line in text.splitlines():
        if not line.strip():
            continue
        for wrapped in textwrap.wrap(line, width):
            lines.append(strip_control_chars(wrapped))
    return lines


def line_weight(line: str) -> int:
    return 1 + math.ceil(len(line.strip()) / CHARS_PER_WEIGHT)


def plan_reply(text: str, budget: int = LINE_BUDGET) -> tuple[list[str], bool]:
    """Decide what goes out inline.

    Returns:
        Tuple of (lines to send, whether the reply overflowed the budget)
    """
    inline = []
    total = 0
    for line in split_long_message(text):
        total += line_weight(line)
        if total > budget:
            return inline, True
        stripped = line.strip()
        if stripped:
            inline.append(stripped)
    return inline, False


async def send_possibly_long_message(transport, target: str, text: str, uploader):
    """Send ``text`` to ``target``, uploading whatever does not fit.

    Args:
        transport: Chat transport with ``async send_line(target, text)``.
        target: Channel or nick to reply to.
        text: Reply text.
        uploader: Object with ``async upload_text(text) -> url``.
    """
    inline, overflow = plan_reply(text)
    for line in inline:
        await transport.send_line(target, line)
    if not overflow:
        return

    try:
        url = await uploader.upload_text(text)
    except Exception as e:
        logger.error(f"Failed to upload long reply for {target}: {e}")
        await transport.send_line(target, OVERFLOW_FAILED_MESSAGE)
        return
    await transport.send_line(target, OVERFLOW_MESSAGE.format(url=url))
