"""Communication sub-core: channel-agnostic reply handling.

- Outbound: long-reply wrapping, control stripping, overflow upload
- Errors: exception to chat message classification
"""

from .errors import classify_error
from .outbound import plan_reply, send_possibly_long_message, split_long_message, strip_control_chars

__all__ = [
    "classify_error",
    "plan_reply",
    "send_possibly_long_message",
    "split_long_message",
    "strip_control_chars",
]
