"""Server-Sent-Events line decoding for chat-completion streams."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def decode_sse_line(line: str) -> dict[str, Any] | None:
    """Return the JSON object carried by one ``data:`` line, else ``None``.

    Comment lines, heartbeats, the ``[DONE]`` sentinel and payloads that
    are not a JSON object all decode to ``None``.
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    if payload.strip() == DONE_SENTINEL:
        return None
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        _logger.debug("Skipping unparsable SSE payload: %.80s", payload)
        return None
    if not isinstance(event, dict):
        return None
    return event


async def iter_sse_events(
    lines: AsyncIterable[str],
) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded events until the line stream closes."""
    async for line in lines:
        event = decode_sse_line(line)
        if event is not None:
            yield event


def first_choice(event: dict[str, Any]) -> dict[str, Any] | None:
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None
