"""Configuration for fluid-llm.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./fluid_llm.yaml``
  3. ``~/.config/fluid-llm/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from fluid_llm.llm.request import RequestConfig

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ProfileSpec:
    """A named provider profile."""

    provider: str = "openai"
    url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    streaming: bool = True
    temperature: float | None = None
    max_tokens: int | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class FluidConfig:
    """Top-level config."""

    # Active profile name
    profile: str = "default"

    # Named profiles
    profiles: dict[str, ProfileSpec] = field(
        default_factory=lambda: {"default": ProfileSpec()}
    )

    # Retry policy
    max_retries: int = 3
    retry_delay: float = 0.2

    timeout: float = 120
    thinking_mode: str = "auto"  # "auto" | "never"

    @property
    def active_profile(self) -> ProfileSpec:
        return self.profiles.get(self.profile, ProfileSpec())

    def request_for(
        self,
        messages: list[dict[str, Any]],
        **overrides: Any,
    ) -> RequestConfig:
        """Build a ``RequestConfig`` from the active profile.

        Keyword *overrides* replace any ``RequestConfig`` field.
        """
        p = self.active_profile
        request = RequestConfig(
            messages=messages,
            model=p.model,
            base_url=p.url,
            api_key=p.api_key,
            streaming=p.streaming,
            temperature=p.temperature,
            max_tokens=p.max_tokens,
            extra_params=dict(p.extra_params) or None,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            thinking_mode=self.thinking_mode,
        )
        return dataclasses.replace(request, **overrides) if overrides else request


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./fluid_llm.yaml"),
    Path.home() / ".config" / "fluid-llm" / "config.yaml",
]


def _parse_profile(raw: dict[str, Any]) -> ProfileSpec:
    defaults = ProfileSpec()
    return ProfileSpec(
        provider=raw.get("provider", defaults.provider),
        url=raw.get("url", defaults.url),
        api_key=raw.get("api_key", defaults.api_key),
        model=raw.get("model", defaults.model),
        streaming=raw.get("streaming", True),
        temperature=raw.get("temperature"),
        max_tokens=raw.get("max_tokens"),
        extra_params=raw.get("extra_params") or {},
    )


def load_config(path: str | Path | None = None) -> FluidConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    FluidConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return FluidConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return FluidConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    profiles: dict[str, ProfileSpec] = {}
    for name, praw in (raw.get("profiles") or {}).items():
        profiles[name] = _parse_profile(praw or {})
    if not profiles:
        profiles["default"] = ProfileSpec()

    return FluidConfig(
        profile=raw.get("profile", next(iter(profiles))),
        profiles=profiles,
        max_retries=raw.get("max_retries", 3),
        retry_delay=raw.get("retry_delay", 0.2),
        timeout=raw.get("timeout", 120),
        thinking_mode=raw.get("thinking_mode", "auto"),
    )
