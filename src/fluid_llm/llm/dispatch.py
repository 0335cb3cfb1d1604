"""Model capability dispatch: model id -> (parser, extra request params).

The table is an ordered tuple of ``CapabilityRule``; the first rule whose
predicate matches the lowercased model id wins.  New model families are
added by putting a rule in front of (or into) ``DEFAULT_RULES``::

    rules = (CapabilityRule("glm", lambda m: "glm" in m, NemoThinkingParser),
             *DEFAULT_RULES)
    client = AsyncLLMClient(rules=rules)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from .thinking import (
    NemoThinkingParser,
    PassThroughParser,
    StandardThinkingParser,
    ThinkingParser,
)

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityRule:
    """One row of the dispatch table."""

    name: str
    matches: Callable[[str], bool]  # receives the lowercased model id
    parser: Callable[[], ThinkingParser]
    extra_params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelCapability:
    """Resolved behaviour for one model id."""

    rule: str
    parser: ThinkingParser
    extra_params: dict[str, Any] = field(default_factory=dict)


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda model: any(n in model for n in needles)


def _is_qwen_thinking(model: str) -> bool:
    return "qwen" in model and ("think" in model or "qwq" in model)


def _is_deepseek_r1(model: str) -> bool:
    return "deepseek" in model and "r1" in model


DEFAULT_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule(
        "nemotron",
        _contains_any("nemotron", "nemo"),
        NemoThinkingParser,
        {"enable_thinking": True},
    ),
    CapabilityRule("qwen-thinking", _is_qwen_thinking, StandardThinkingParser),
    CapabilityRule(
        "deepseek-r1",
        _is_deepseek_r1,
        StandardThinkingParser,
        {"enable_reasoning": True},
    ),
    CapabilityRule("deepseek", _contains_any("deepseek"), StandardThinkingParser),
)

FALLBACK_RULE = CapabilityRule("default", lambda model: True, StandardThinkingParser)


def resolve_capability(
    model: str,
    rules: Sequence[CapabilityRule] = DEFAULT_RULES,
    thinking_mode: str = "auto",
) -> ModelCapability:
    """Pick the parser and model-specific request parameters for *model*.

    ``thinking_mode="never"`` bypasses the table: no segmentation and no
    model-specific parameters.
    """
    if thinking_mode == "never":
        _logger.debug("Thinking disabled, using PassThroughParser for %r", model)
        return ModelCapability("disabled", PassThroughParser())

    lowered = model.lower()
    chosen = next((r for r in rules if r.matches(lowered)), FALLBACK_RULE)
    _logger.debug(
        "Using %s (rule=%s) for model %r",
        chosen.parser.__name__, chosen.name, model,
    )
    return ModelCapability(chosen.name, chosen.parser(), dict(chosen.extra_params))


_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "openai/")


def is_reasoning_model(model: str) -> bool:
    """Models that take ``max_completion_tokens`` instead of ``max_tokens``."""
    lowered = model.lower()
    return (
        lowered.startswith(_REASONING_PREFIXES)
        or "gpt-5." in lowered
        or "gpt-oss" in lowered
        or ("deepseek" in lowered and "reasoner" in lowered)
    )
