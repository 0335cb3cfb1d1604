"""Request configuration and outbound request assembly."""

from __future__ import annotations

import ipaddress
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from fluid_llm.errors import EncodingError, MalformedRequestError
from fluid_llm.types import StreamCallbacks

from .dispatch import is_reasoning_model

_logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
_FULL_ENDPOINT_MARKERS = ("/chat/completions", "/api/chat", "/api/generate")


# ---------------------------------------------------------------------------
# Request type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestConfig:
    """Everything needed for a single ``call``."""

    messages: list[dict[str, Any]]
    model: str
    base_url: str = ""
    api_key: str = ""
    streaming: bool = True
    tools: list[dict[str, Any]] | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    # Caller overrides; applied after the model-specific parameters
    extra_params: dict[str, Any] | None = None
    max_retries: int = 3
    retry_delay: float = 0.2  # seconds, multiplied by the attempt number
    thinking_mode: str = "auto"  # "auto" | "never"
    callbacks: StreamCallbacks | None = None


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


# ---------------------------------------------------------------------------
# Endpoint helpers
# ---------------------------------------------------------------------------

def resolve_endpoint(base_url: str) -> str:
    """Turn a provider base URL into the chat-completions endpoint."""
    base = base_url.strip()
    if not base:
        return DEFAULT_ENDPOINT
    if any(marker in base for marker in _FULL_ENDPOINT_MARKERS):
        return base
    return f"{base.rstrip('/')}/chat/completions"


def is_local_endpoint(url: str) -> bool:
    """True for localhost, loopback and private-network hosts."""
    try:
        host = httpx.URL(url).host.lower()
    except httpx.InvalidURL:
        return False
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_private


# ---------------------------------------------------------------------------
# Request assembly
# ---------------------------------------------------------------------------

def build_body(
    config: RequestConfig,
    model_params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble the JSON body.

    Parameter layers, later wins: model-specific, caller-supplied, then
    the token limit under the key the model understands.
    """
    body: dict[str, Any] = {
        "model": config.model,
        "messages": config.messages,
    }
    if config.temperature is not None:
        body["temperature"] = config.temperature
    if config.tools:
        body["tools"] = config.tools
        body["tool_choice"] = "auto"
    if config.streaming:
        body["stream"] = True
    if model_params:
        body.update(model_params)
    if config.extra_params:
        body.update(config.extra_params)
    if config.max_tokens is not None:
        if is_reasoning_model(config.model):
            body["max_completion_tokens"] = config.max_tokens
        else:
            body["max_tokens"] = config.max_tokens
    return body


def build_request(
    config: RequestConfig,
    model_params: dict[str, Any] | None = None,
) -> PreparedRequest:
    endpoint = resolve_endpoint(config.base_url)
    try:
        url = httpx.URL(endpoint)
    except httpx.InvalidURL as exc:
        raise MalformedRequestError(f"Invalid URL: {endpoint}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise MalformedRequestError(f"Invalid URL: {endpoint}")

    try:
        payload = json.dumps(build_body(config, model_params)).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Failed to encode request: {exc}") from exc

    headers = {"Content-Type": "application/json"}
    if config.api_key and not is_local_endpoint(endpoint):
        headers["Authorization"] = f"Bearer {config.api_key}"

    text = payload.decode("utf-8")
    _logger.debug(
        "Request (%d messages, model=%s, streaming=%s): %s",
        len(config.messages), config.model, config.streaming,
        text if len(text) <= 500 else text[:500] + "...",
    )
    return PreparedRequest(url=str(url), headers=headers, body=payload)
