"""Process-wide sampling temperature.

The temperature is read on every chat line that parses as a directive and
written only by the ``!set_temp`` admin command. It lives in an
:class:`AtomicFloat`: the value is kept as the integer bit pattern of an
IEEE-754 double, so a store or load is a single reference swap and readers
never take a lock.
"""

import logging
import math
import re
import struct
import threading
from typing import Optional

logger = logging.getLogger("chatrelay.temperature")

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0

# Plain decimal or scientific notation, plus inf/infinity/nan; no digit
# separators and no non-ASCII digits
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|infinity|nan)",
    re.ASCII | re.IGNORECASE,
)

_PACK = struct.Struct("<d")
_BITS = struct.Struct("<Q")


def _to_bits(value: float) -> int:
    return _BITS.unpack(_PACK.pack(value))[0]


def _from_bits(bits: int) -> float:
    return _PACK.unpack(_BITS.pack(bits))[0]


def clamp_temperature(value: float) -> float:
    """Clamp a temperature into the accepted [0.0, 2.0] range."""
    return min(MAX_TEMPERATURE, max(MIN_TEMPERATURE, value))


class AtomicFloat:
    """A float cell stored as a 64-bit pattern.

    ``store`` and ``load`` each touch exactly one attribute holding an
    immutable int, which makes them safe to call from any thread or task.
    """

    __slots__ = ("_bits",)

    def __init__(self, value: float = 0.0):
        self._bits = _to_bits(value)

    def store(self, value: float):
        self._bits = _to_bits(value)

    def load(self) -> float:
        return _from_bits(self._bits)

    def __repr__(self) -> str:
        return f"AtomicFloat({self.load()!r})"


# Global temperature cell, see init_temperature()
_temperature = AtomicFloat(0.0)
_initialized = False
_init_lock = threading.Lock()


def init_temperature(value: float) -> AtomicFloat:
    """Initialize the process-wide temperature. Only the first call counts.

    Later calls are ignored with a warning; use ``get_temperature().store()``
    to change the value at runtime.

    Args:
        value: Starting temperature, clamped into range. Non-finite values
            fall back to 1.0.

    Returns:
        The singleton cell.
    """
    global _initialized
    with _init_lock:
        if _initialized:
            logger.warning(f"Temperature already initialized, ignoring {value}")
            return _temperature
        if not math.isfinite(value):
            logger.warning(f"Non-finite initial temperature {value}, using 1.0")
            value = 1.0
        _temperature.store(clamp_temperature(value))
        _initialized = True
    logger.debug(f"Temperature initialized to {_temperature.load()}")
    return _temperature


def get_temperature() -> AtomicFloat:
    """Return the process-wide temperature cell."""
    return _temperature


def parse_float(text: str) -> Optional[float]:
    """Strictly parse a float typed in chat. None when ``text`` is not one."""
    text = text.strip()
    if not _FLOAT_RE.fullmatch(text):
        return None
    return float(text)


def parse_temperature(text: str) -> Optional[float]:
    """Parse a user supplied temperature.

    Returns the clamped value, or None when ``text`` is not a float or is NaN.
    Infinities clamp to the range ends.
    """
    value = parse_float(text)
    if value is None:
        return None
    if math.isnan(value):
        return None
    return clamp_temperature(value)
