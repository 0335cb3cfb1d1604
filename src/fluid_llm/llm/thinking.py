"""Incremental thinking/content segmentation for streamed responses.

Parsers are stateless strategies with two operations:

``process_chunk(chunk, state, buffer) -> (new_state, thinking, content)``
    Classify ``buffer + chunk`` up to the next state transition.  Text
    that could still be the start of a delimiter stays in the
    ``TagBuffer``.

``finalize(thinking_fragments, content_fragments, final_state)``
    Join the fragments and clean up the aggregate.

``ThinkingStream`` drives one parser over a single response and turns
its output into ordered ``(event_type, data)`` tuples for callbacks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Generator, Protocol

from fluid_llm.types import Fragment, ParserState

_logger = logging.getLogger(__name__)

OPEN_TAGS = ("<think>", "<thinking>")
CLOSE_TAGS = ("</think>", "</thinking>")
ALL_TAGS = OPEN_TAGS + CLOSE_TAGS

StreamEvent = tuple[str, str]


def _tag_pattern(tags: tuple[str, ...]) -> re.Pattern[str]:
    ordered = sorted(tags, key=len, reverse=True)
    return re.compile("|".join(re.escape(t) for t in ordered))


def safe_margin(tags: tuple[str, ...]) -> int:
    """Characters to hold back so no delimiter is ever split on emit."""
    return max(len(t) for t in tags) - 1


def partial_tag_length(text: str, tags: tuple[str, ...]) -> int:
    """Length of the longest suffix of *text* that could start one of *tags*."""
    for size in range(min(len(text), safe_margin(tags)), 0, -1):
        tail = text[-size:]
        if any(t.startswith(tail) and t != tail for t in tags):
            return size
    return 0


def strip_tags(text: str, tags: tuple[str, ...] = ALL_TAGS) -> str:
    for tag in tags:
        text = text.replace(tag, "")
    return text


def merge_thinking(*parts: str | None) -> str:
    """Newline-join thinking texts, skipping empty and duplicate parts."""
    merged: list[str] = []
    for part in parts:
        if part and part.strip() and part not in merged:
            merged.append(part)
    return "\n".join(merged)


# ---------------------------------------------------------------------------
# Tag buffer
# ---------------------------------------------------------------------------

@dataclass
class TagBuffer:
    """Text received but not yet classified."""

    text: str = ""

    def take(self, length: int) -> str:
        head, self.text = self.text[:length], self.text[length:]
        return head

    def hold_back(self, margin: int) -> str:
        """Remove and return everything except the last *margin* chars."""
        return self.take(max(0, len(self.text) - margin))

    def drain(self) -> str:
        return self.take(len(self.text))


# ---------------------------------------------------------------------------
# Parser variants
# ---------------------------------------------------------------------------

class ThinkingParser(Protocol):
    """Segmentation strategy shared by all model families."""

    def process_chunk(
        self,
        chunk: str,
        state: ParserState,
        buffer: TagBuffer,
    ) -> tuple[ParserState, str, str]:
        ...

    def finalize(
        self,
        thinking: list[str],
        content: list[str],
        final_state: ParserState,
    ) -> tuple[str, str]:
        ...


class StandardThinkingParser:
    """``<think>...</think>`` / ``<thinking>...</thinking>`` spans.

    Used by DeepSeek, Qwen thinking models and most open models.
    A closing tag outside a thinking span is dropped.
    """

    open_tags = OPEN_TAGS
    close_tags = CLOSE_TAGS

    def __init__(self) -> None:
        self.tags = self.open_tags + self.close_tags
        self.margin = safe_margin(self.tags)
        self._any_tag = _tag_pattern(self.tags)
        self._close_tag = _tag_pattern(self.close_tags)

    def process_chunk(
        self,
        chunk: str,
        state: ParserState,
        buffer: TagBuffer,
    ) -> tuple[ParserState, str, str]:
        """Classify up to and including the next state transition.

        Returns after at most one transition; the caller feeds ``""``
        again until the state stops changing.
        """
        buffer.text += chunk

        if state is ParserState.IN_THINKING:
            match = self._close_tag.search(buffer.text)
            if match is None:
                return state, buffer.hold_back(self.margin), ""
            thinking = buffer.take(match.start())
            buffer.take(match.end() - match.start())
            _logger.debug("StandardParser: found %s", match.group())
            # Answer text right after the span goes out now unless another
            # tag follows; only a possible partial tag stays buffered.
            content = ""
            if self._any_tag.search(buffer.text) is None:
                content = buffer.take(
                    len(buffer.text) - partial_tag_length(buffer.text, self.tags),
                )
            return ParserState.IN_CONTENT, thinking, content

        parts: list[str] = []
        while True:
            match = self._any_tag.search(buffer.text)
            if match is None:
                parts.append(buffer.hold_back(self.margin))
                return state, "", "".join(parts)
            parts.append(buffer.take(match.start()))
            buffer.take(match.end() - match.start())
            if match.group() in self.open_tags:
                _logger.debug("StandardParser: found %s", match.group())
                return ParserState.IN_THINKING, "", "".join(parts)
            # stray closing tag: dropped, state unchanged

    def finalize(
        self,
        thinking: list[str],
        content: list[str],
        final_state: ParserState,
    ) -> tuple[str, str]:
        return "".join(thinking), strip_tags("".join(content)).strip()


class NemoThinkingParser:
    """Nemotron-style output: ``reasoning</think>answer``.

    No opening tag is ever sent, so the stream is thinking from the
    first chunk until a closing tag shows up.
    """

    close_tags = CLOSE_TAGS

    def __init__(self) -> None:
        self.margin = safe_margin(self.close_tags)
        self._close_tag = _tag_pattern(self.close_tags)

    def process_chunk(
        self,
        chunk: str,
        state: ParserState,
        buffer: TagBuffer,
    ) -> tuple[ParserState, str, str]:
        buffer.text += chunk
        if state is ParserState.INITIAL:
            state = ParserState.IN_THINKING

        if state is ParserState.IN_CONTENT:
            return state, "", buffer.drain()

        match = self._close_tag.search(buffer.text)
        if match is None:
            return state, buffer.hold_back(self.margin), ""

        thinking = buffer.take(match.start())
        buffer.take(match.end() - match.start())
        content = buffer.drain()
        _logger.debug(
            "NemoParser: found %s. Thinking: %d chars, Content: %d chars",
            match.group(), len(thinking), len(content),
        )
        return ParserState.IN_CONTENT, thinking, content

    def finalize(
        self,
        thinking: list[str],
        content: list[str],
        final_state: ParserState,
    ) -> tuple[str, str]:
        thinking_text = "".join(thinking)
        content_text = "".join(content)
        # No closing tag ever arrived: the server did not run in thinking
        # mode, so what looked like reasoning is the answer.
        if final_state is ParserState.IN_THINKING:
            _logger.debug(
                "NemoParser finalize: no closing tag, treating %d chars as content",
                len(thinking_text),
            )
            content_text = thinking_text + content_text
            thinking_text = ""
        return thinking_text, strip_tags(content_text, self.close_tags).strip()


class PassThroughParser:
    """No segmentation: everything is content."""

    def process_chunk(
        self,
        chunk: str,
        state: ParserState,
        buffer: TagBuffer,
    ) -> tuple[ParserState, str, str]:
        return ParserState.IN_CONTENT, "", chunk

    def finalize(
        self,
        thinking: list[str],
        content: list[str],
        final_state: ParserState,
    ) -> tuple[str, str]:
        return "", "".join(content)


# ---------------------------------------------------------------------------
# ThinkingStream: one response, one parser
# ---------------------------------------------------------------------------

class ThinkingStream:
    """Feeds text chunks through a parser and tracks the thinking span.

    ``feed()``, ``feed_reasoning()`` and ``finish()`` yield
    ``(event_type, data)`` pairs in display order.

    event_type: ``"thinking_start"``, ``"thinking"``, ``"thinking_end"``,
    ``"content"``

    Text from a dedicated reasoning field is kept apart from the
    tag-derived fragments and merged back in ``result()``.
    """

    def __init__(self, parser: ThinkingParser) -> None:
        self.parser = parser
        self.state = ParserState.INITIAL
        self.buffer = TagBuffer()
        self.fragments: list[Fragment] = []
        self.reasoning: list[str] = []
        self._thinking_open = False

    @property
    def thinking_fragments(self) -> list[str]:
        return [f.text for f in self.fragments if f.kind == "thinking"]

    @property
    def content_fragments(self) -> list[str]:
        return [f.text for f in self.fragments if f.kind == "content"]

    @property
    def has_output(self) -> bool:
        """True once anything has been handed to the caller."""
        return bool(self.fragments or self.reasoning)

    def feed(self, chunk: str) -> Generator[StreamEvent, None, None]:
        text = chunk
        while True:
            previous = self.state
            self.state, thinking, content = self.parser.process_chunk(
                text, self.state, self.buffer,
            )
            yield from self._step(previous, thinking, content)
            if self.state is previous:
                return
            # A transition may leave more delimiters in the buffer
            text = ""

    def feed_reasoning(self, text: str) -> Generator[StreamEvent, None, None]:
        if not text:
            return
        self.reasoning.append(text)
        yield from self._open()
        yield ("thinking", text)

    def finish(self) -> Generator[StreamEvent, None, None]:
        """Flush whatever is still held back in the tag buffer."""
        leftover = self.buffer.drain()
        if leftover:
            if self.state is ParserState.IN_THINKING:
                _logger.debug(
                    "ThinkingStream: flushing %d chars to thinking", len(leftover),
                )
                yield from self._thinking(leftover)
            else:
                _logger.debug(
                    "ThinkingStream: flushing %d chars to content", len(leftover),
                )
                yield from self._content(leftover)
        yield from self._close()

    def result(self) -> tuple[str, str]:
        """Return the final ``(thinking, content)`` pair."""
        thinking, content = self.parser.finalize(
            self.thinking_fragments, self.content_fragments, self.state,
        )
        return merge_thinking(thinking, "".join(self.reasoning)), content

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _step(
        self,
        previous: ParserState,
        thinking: str,
        content: str,
    ) -> Generator[StreamEvent, None, None]:
        in_thinking = self.state is ParserState.IN_THINKING

        if in_thinking and previous is not ParserState.IN_THINKING:
            _logger.debug("ThinkingStream: state transition -> in_thinking")
            yield from self._content(content)
            yield from self._open()
            yield from self._thinking(thinking)
        elif previous is ParserState.IN_THINKING and not in_thinking:
            _logger.debug("ThinkingStream: state transition -> in_content")
            yield from self._thinking(thinking)
            yield from self._close()
            yield from self._content(content)
        else:
            if thinking:
                yield from self._thinking(thinking)
                if not in_thinking:
                    yield from self._close()
            yield from self._content(content)

    def _open(self) -> Generator[StreamEvent, None, None]:
        if not self._thinking_open:
            self._thinking_open = True
            yield ("thinking_start", "")

    def _close(self) -> Generator[StreamEvent, None, None]:
        if self._thinking_open:
            self._thinking_open = False
            yield ("thinking_end", "")

    def _thinking(self, text: str) -> Generator[StreamEvent, None, None]:
        if not text:
            return
        yield from self._open()
        self.fragments.append(Fragment("thinking", text))
        yield ("thinking", text)

    def _content(self, text: str) -> Generator[StreamEvent, None, None]:
        if not text:
            return
        yield from self._close()
        self.fragments.append(Fragment("content", text))
        yield ("content", text)
