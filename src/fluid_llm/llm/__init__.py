"""LLM client, stream parsing and model dispatch for fluid-llm."""

from fluid_llm.llm.client import AsyncLLMClient, call
from fluid_llm.llm.dispatch import (
    DEFAULT_RULES,
    CapabilityRule,
    ModelCapability,
    resolve_capability,
)
from fluid_llm.llm.request import RequestConfig
from fluid_llm.llm.response_parser import ToolCallAssembler, strip_thinking_tags
from fluid_llm.llm.sse import iter_sse_events
from fluid_llm.llm.thinking import (
    NemoThinkingParser,
    PassThroughParser,
    StandardThinkingParser,
    ThinkingStream,
)

__all__ = [
    "AsyncLLMClient",
    "CapabilityRule",
    "DEFAULT_RULES",
    "ModelCapability",
    "NemoThinkingParser",
    "PassThroughParser",
    "RequestConfig",
    "StandardThinkingParser",
    "ThinkingStream",
    "ToolCallAssembler",
    "call",
    "iter_sse_events",
    "resolve_capability",
    "strip_thinking_tags",
]
