"""Error taxonomy for LLM calls.

Only ``TransportError`` with ``retryable=True`` is retried by the
client.  Everything else is terminal.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base class for terminal failures of ``AsyncLLMClient.call``."""


class MalformedRequestError(LLMError):
    """The endpoint or request could not be turned into a valid request."""


class EncodingError(LLMError):
    """The request body could not be serialized to JSON."""


class TransportError(LLMError):
    """Connectivity-class failure (timeout, DNS, refused, dropped)."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class ProtocolError(LLMError):
    """The server answered with an HTTP error status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class DecodingError(LLMError):
    """The response did not have the expected shape."""
