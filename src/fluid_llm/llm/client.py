"""Async chat-completion client with streaming thinking/tool-call parsing.

``AsyncLLMClient.call(config)`` builds one request, runs it streaming or
non-streaming, and retries transport failures with linear backoff
(``retry_delay * attempt``).  Every other failure is terminal.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Sequence

import httpx

from fluid_llm.errors import (
    DecodingError,
    LLMError,
    MalformedRequestError,
    ProtocolError,
    TransportError,
)
from fluid_llm.types import LLMResponse, StreamCallbacks

from .dispatch import DEFAULT_RULES, CapabilityRule, ModelCapability, resolve_capability
from .request import PreparedRequest, RequestConfig, build_request
from .response_parser import (
    ToolCallAssembler,
    parse_message_tool_calls,
    strip_thinking_tags,
)
from .sse import first_choice, iter_sse_events
from .thinking import StreamEvent, ThinkingStream, merge_thinking

_logger = logging.getLogger(__name__)

# Connectivity-class failures: timeouts, DNS/connect/read/write errors,
# and connections dropped mid-response.
_TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def _translate_http_error(exc: httpx.HTTPError) -> LLMError:
    """Map an httpx exception onto the client's error taxonomy."""
    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, _TRANSIENT_ERRORS):
        return TransportError(message)
    if isinstance(exc, httpx.UnsupportedProtocol):
        return MalformedRequestError(message)
    if isinstance(exc, httpx.DecodingError):
        return DecodingError(message)
    return TransportError(message, retryable=False)


def _fire(hook: Callable[..., Any] | None, *args: Any) -> None:
    if hook is not None:
        hook(*args)


def _dispatch(events: Iterable[StreamEvent], callbacks: StreamCallbacks) -> None:
    """Route ``ThinkingStream`` events to the caller's hooks, in order."""
    for kind, text in events:
        if kind == "thinking":
            _fire(callbacks.on_thinking_chunk, text)
        elif kind == "content":
            _fire(callbacks.on_content_chunk, text)
        elif kind == "thinking_start":
            _fire(callbacks.on_thinking_start)
        elif kind == "thinking_end":
            _fire(callbacks.on_thinking_end)


class AsyncLLMClient:
    """Client for OpenAI-compatible chat-completion APIs.

    Parameters
    ----------
    timeout:
        Overall request timeout in seconds (connect is capped at 30).
    rules:
        Model dispatch table, see ``fluid_llm.llm.dispatch``.
    transport:
        Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        timeout: float = 120,
        *,
        rules: Sequence[CapabilityRule] = DEFAULT_RULES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rules = tuple(rules)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30),
            transport=transport,
        )

    async def __aenter__(self) -> AsyncLLMClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def call(self, config: RequestConfig) -> LLMResponse:
        """Run one chat completion described by *config*.

        Raises an ``LLMError`` subclass on terminal failure.
        """
        capability = resolve_capability(
            config.model, self._rules, config.thinking_mode,
        )
        request = build_request(config, capability.extra_params)

        last_error: TransportError | None = None
        for attempt in range(1, config.max_retries + 1):
            try:
                if config.streaming:
                    return await self._call_streaming(request, config, capability)
                return await self._call_once(request, config)
            except TransportError as e:
                if not e.retryable:
                    raise
                last_error = e
                _logger.warning(
                    "LLM transport error (attempt %d/%d): %s",
                    attempt, config.max_retries, e,
                )
                if attempt < config.max_retries:
                    await asyncio.sleep(config.retry_delay * attempt)

        raise last_error or TransportError("Request failed after retries")

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def _call_once(
        self,
        request: PreparedRequest,
        config: RequestConfig,
    ) -> LLMResponse:
        _logger.debug("Making non-streaming request to %s", request.url)
        start = time.monotonic()
        try:
            resp = await self._client.post(
                request.url, content=request.body, headers=request.headers,
            )
        except httpx.HTTPError as exc:
            raise _translate_http_error(exc) from exc

        if resp.status_code >= 400:
            _logger.error("HTTP error %d: %.200s", resp.status_code, resp.text)
            raise ProtocolError(resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodingError("Invalid response from LLM: not JSON") from exc

        choice = first_choice(data) if isinstance(data, dict) else None
        message = choice.get("message") if choice else None
        if not isinstance(message, dict):
            raise DecodingError("Invalid response from LLM: no message")

        raw_content = message.get("content")
        if not isinstance(raw_content, str):
            raw_content = ""
        thinking, content = strip_thinking_tags(raw_content)
        reasoning = message.get("reasoning_content")
        thinking = merge_thinking(
            thinking, reasoning if isinstance(reasoning, str) else None,
        )
        tool_calls = parse_message_tool_calls(message.get("tool_calls"))

        return LLMResponse(
            content=content,
            thinking=thinking or None,
            tool_calls=tool_calls or None,
            finish_reason=choice.get("finish_reason") or "",
            usage=data.get("usage") or {},
            model=data.get("model") or config.model,
            latency_ms=(time.monotonic() - start) * 1000,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _call_streaming(
        self,
        request: PreparedRequest,
        config: RequestConfig,
        capability: ModelCapability,
    ) -> LLMResponse:
        _logger.debug("Starting streaming request to %s", request.url)
        start = time.monotonic()
        callbacks = config.callbacks or StreamCallbacks()
        stream = ThinkingStream(capability.parser)
        tools = ToolCallAssembler()
        model_name = config.model
        finish_reason = ""
        usage: dict[str, int] = {}

        try:
            async with self._client.stream(
                "POST", request.url, content=request.body, headers=request.headers,
            ) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    _logger.error("HTTP error %d: %.200s", resp.status_code, body)
                    raise ProtocolError(resp.status_code, body)

                async for event in iter_sse_events(resp.aiter_lines()):
                    model_name = event.get("model") or model_name
                    if event.get("usage"):
                        usage = event["usage"]
                    choice = first_choice(event)
                    if choice is None:
                        continue
                    finish_reason = choice.get("finish_reason") or finish_reason
                    delta = choice.get("delta")
                    if not isinstance(delta, dict):
                        continue

                    reasoning = delta.get("reasoning_content")
                    if isinstance(reasoning, str):
                        _dispatch(stream.feed_reasoning(reasoning), callbacks)
                    chunk = delta.get("content")
                    if isinstance(chunk, str) and chunk:
                        _dispatch(stream.feed(chunk), callbacks)
                    for name in tools.feed(delta):
                        _fire(callbacks.on_tool_call_start, name)

                _dispatch(stream.finish(), callbacks)
        except httpx.HTTPError as exc:
            if stream.has_output or tools.has_calls():
                _logger.warning(
                    "Stream interrupted after %d fragments: %s",
                    len(stream.fragments), exc,
                )
            raise _translate_http_error(exc) from exc

        thinking, content = stream.result()
        tool_calls = tools.finalize()
        _logger.debug(
            "Streaming complete. Thinking: %d chars, Content: %d chars, "
            "Tool calls: %d",
            len(thinking), len(content), len(tool_calls),
        )
        return LLMResponse(
            content=content,
            thinking=thinking or None,
            tool_calls=tool_calls or None,
            finish_reason=finish_reason or "stop",
            usage=usage,
            model=model_name,
            latency_ms=(time.monotonic() - start) * 1000,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


async def call(config: RequestConfig, timeout: float = 120) -> LLMResponse:
    """One-shot helper: open a client, run *config*, close the client."""
    async with AsyncLLMClient(timeout) as client:
        return await client.call(config)
