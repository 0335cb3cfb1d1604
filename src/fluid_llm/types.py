"""Shared data types for fluid-llm."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable


# ---------------------------------------------------------------------------
# Segmentation types
# ---------------------------------------------------------------------------

class ParserState(enum.Enum):
    """Where a thinking parser currently is in the response text."""

    INITIAL = "initial"  # segmentation not yet determined
    IN_THINKING = "in_thinking"
    IN_CONTENT = "in_content"


@dataclass(frozen=True)
class Fragment:
    """One classified piece of streamed text."""

    kind: str  # "thinking" | "content"
    text: str


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class ToolCall:
    """Parsed function call from an LLM response."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def get_string(self, key: str) -> str | None:
        value = self.arguments.get(key)
        return value if isinstance(value, str) else None

    def get_optional_string(self, key: str) -> str | None:
        """Like ``get_string`` but treats an empty string as missing."""
        value = self.get_string(key)
        return value or None


# ---------------------------------------------------------------------------
# LLM types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LLMResponse:
    """Final aggregate of one ``call``."""

    content: str = ""
    thinking: str | None = None
    tool_calls: list[ToolCall] | None = None
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""
    latency_ms: float = 0

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class StreamCallbacks:
    """Optional per-fragment hooks for live UI feedback.

    All hooks run synchronously inside the stream loop, in arrival
    order, before the next line is read.
    """

    on_thinking_start: Callable[[], Any] | None = None
    on_thinking_chunk: Callable[[str], Any] | None = None
    on_thinking_end: Callable[[], Any] | None = None
    on_content_chunk: Callable[[str], Any] | None = None
    on_tool_call_start: Callable[[str], Any] | None = None
