"""Completion service contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from ..context import Turn


# ════════════════════════════════════════════════════════
# LLM Exception Hierarchy: classify errors by type,
# not by string matching.  The dispatcher catches these.
# ════════════════════════════════════════════════════════

class LLMError(Exception):
    """Base class for all completion service errors."""
    pass

class LLMRateLimitError(LLMError):
    """429: rate limited."""
    pass

class LLMAuthError(LLMError):
    """401/403: authentication or authorization failure."""
    pass

class LLMBadRequestError(LLMError):
    """400: bad request (malformed messages, oversized context, etc.)."""
    pass

class LLMEmptyResponseError(LLMError):
    """The service answered without any choices."""
    pass


@dataclass
class CompletionMessage:
    role: str                       # 'assistant', 'tool', 'system'
    content: Optional[str]
    tool_calls: Optional[list] = None
    tool_call_id: Optional[str] = None


@dataclass
class UsageAccumulator:
    """Token usage summed over the requests of one completion."""
    input_tokens: int = 0
    output_tokens: int = 0
    rounds: int = 0

    def add(self, usage: Optional[dict]):
        usage = usage or {}
        self.input_tokens += usage.get("prompt_tokens", 0)
        self.output_tokens += usage.get("completion_tokens", 0)
        self.rounds += 1


@dataclass
class PlainReply:
    """The model answered directly."""
    reply: CompletionMessage
    model: str = ""
    usage: UsageAccumulator = field(default_factory=UsageAccumulator)

    @property
    def messages(self) -> list[CompletionMessage]:
        return [self.reply]


@dataclass
class ToolReply:
    """The model called tools once, then answered with their results."""
    call: CompletionMessage
    results: list[CompletionMessage]
    reply: CompletionMessage
    model: str = ""
    usage: UsageAccumulator = field(default_factory=UsageAccumulator)

    @property
    def messages(self) -> list[CompletionMessage]:
        return [self.call, *self.results, self.reply]


CompletionResult = Union[PlainReply, ToolReply]


def reply_texts(result: CompletionResult) -> list[str]:
    """Texts of the agent's messages in ``result``, in order."""
    return [
        m.content for m in result.messages
        if m.role == "assistant" and m.content
    ]


class CompletionProvider(ABC):
    """Abstract base class for completion services."""

    @abstractmethod
    async def complete(
        self,
        turns: Sequence[Turn],
        model: Optional[str] = None,
        temperature: float = 1.0,
    ) -> CompletionResult:
        """Request a completion for ``turns``."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...
