"""Thinking extraction for complete texts and tool-call assembly."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from fluid_llm.types import ToolCall, new_call_id

from .thinking import ALL_TAGS, strip_tags

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Thinking extraction (non-streaming)
# ---------------------------------------------------------------------------

_PAIRED_PATTERN = re.compile(r"<think(?:ing)?>(.*?)</think(?:ing)?>", re.DOTALL)
# Reasoning that never had an opening tag: "We have a request...</think>Hello!"
_ORPHAN_PATTERN = re.compile(r"^(.*?)</think(?:ing)?>", re.DOTALL)


def strip_thinking_tags(text: str) -> tuple[str, str]:
    """Split a complete response text into ``(thinking, content)``.

    Paired spans are collected first, then a leading span closed by an
    orphan closing tag.  Remaining stray tags are removed.  When nothing
    at all is left the original text is returned as content.
    """
    parts = _PAIRED_PATTERN.findall(text)
    remainder = _PAIRED_PATTERN.sub("", text)

    orphan = _ORPHAN_PATTERN.search(remainder)
    if orphan:
        parts.append(orphan.group(1))
        remainder = remainder[orphan.end():]

    thinking = "\n".join(p.strip() for p in parts if p.strip())
    content = strip_tags(remainder, ALL_TAGS).strip()
    if not thinking and not content:
        return "", text
    return thinking, content


# ---------------------------------------------------------------------------
# Tool-call arguments
# ---------------------------------------------------------------------------

def _parse_arguments(raw: Any) -> dict[str, Any] | None:
    """Decode tool-call arguments; ``None`` unless they form a JSON object."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return args if isinstance(args, dict) else None


# ---------------------------------------------------------------------------
# Streaming tool calls
# ---------------------------------------------------------------------------

@dataclass
class ToolCallAccumulator:
    """One function call being streamed in fragments."""

    id: str | None = None
    name: str | None = None
    arguments_text: str = ""

    def feed(self, fragment: dict[str, Any]) -> str | None:
        """Merge one ``tool_calls[i]`` fragment.

        Returns the function name the first time it is seen, so the
        caller can announce the call.
        """
        started = None
        call_id = fragment.get("id")
        if self.id is None and isinstance(call_id, str) and call_id:
            self.id = call_id
        function = fragment.get("function")
        if not isinstance(function, dict):
            return None
        name = function.get("name")
        if self.name is None and isinstance(name, str) and name:
            self.name = name
            started = name
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            self.arguments_text += arguments
        return started

    def to_tool_call(self) -> ToolCall | None:
        if not self.name:
            return None
        arguments = _parse_arguments(self.arguments_text)
        if arguments is None:
            return None
        return ToolCall(id=self.id or new_call_id(), name=self.name, arguments=arguments)


class ToolCallAssembler:
    """Collect streamed ``delta.tool_calls`` fragments by ``index``.

    Nothing is parsed until ``finalize()``; a call without a name or with
    arguments that are not a JSON object is dropped there.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallAccumulator] = {}

    def feed(self, delta: dict[str, Any]) -> list[str]:
        """Process one delta.  Returns names of calls that started in it."""
        fragments = delta.get("tool_calls")
        if not isinstance(fragments, list):
            return []
        started: list[str] = []
        for fragment in fragments:
            if not isinstance(fragment, dict):
                continue
            index = fragment.get("index", 0)
            if not isinstance(index, int):
                index = 0
            name = self._calls.setdefault(index, ToolCallAccumulator()).feed(fragment)
            if name:
                started.append(name)
        return started

    def has_calls(self) -> bool:
        return bool(self._calls)

    def finalize(self) -> list[ToolCall]:
        result: list[ToolCall] = []
        for index in sorted(self._calls):
            entry = self._calls[index]
            call = entry.to_tool_call()
            if call is None:
                _logger.debug(
                    "Dropping tool call %d (name=%r, %d chars of arguments)",
                    index, entry.name, len(entry.arguments_text),
                )
                continue
            _logger.debug("Parsed tool call: %s", call.name)
            result.append(call)
        return result


# ---------------------------------------------------------------------------
# Non-streaming tool calls
# ---------------------------------------------------------------------------

def parse_message_tool_calls(entries: Any) -> list[ToolCall]:
    """Parse ``message.tool_calls``; unparsable entries are dropped."""
    if not isinstance(entries, list):
        return []
    calls: list[ToolCall] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        function = entry.get("function")
        if not isinstance(function, dict):
            continue
        name = function.get("name")
        arguments = _parse_arguments(function.get("arguments"))
        if not isinstance(name, str) or not name or arguments is None:
            _logger.debug("Dropping unparsable tool call entry: %.200s", entry)
            continue
        call_id = entry.get("id")
        calls.append(
            ToolCall(
                id=call_id if isinstance(call_id, str) and call_id else new_call_id(),
                name=name,
                arguments=arguments,
            )
        )
    return calls
