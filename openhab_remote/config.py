"""Integration options."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from openhab_remote.exceptions import ConfigurationError

REST_SUFFIX = "/rest/"


def normalize_url(url: str) -> str:
    """Return ``url`` ending in ``/rest/``."""
    base = url.strip()
    if not base:
        raise ConfigurationError("Option 'url' must not be empty")
    if not base.startswith(("http://", "https://")):
        raise ConfigurationError(f"Option 'url' must be an http(s) URL, got '{url}'")
    if base.endswith(REST_SUFFIX):
        return base
    base = base.rstrip("/")
    if base.endswith(REST_SUFFIX.rstrip("/")):
        return base + "/"
    return base + REST_SUFFIX


@dataclass(frozen=True)
class OpenHABConfig:
    url: str
    token: str | None = None
    polling_interval: float = 1.0

    DEFAULT_POLLING_INTERVAL_MS = 1000

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> OpenHABConfig:
        """Build a config from the integration's option mapping.

        ``polling_interval`` is given in milliseconds; 0 disables fallback polling.
        """
        url = options.get("url")
        if not isinstance(url, str):
            raise ConfigurationError("Option 'url' is required")

        token = options.get("token")
        if token is not None and not isinstance(token, str):
            raise ConfigurationError("Option 'token' must be a string")

        raw_interval = options.get("polling_interval", cls.DEFAULT_POLLING_INTERVAL_MS)
        try:
            interval_ms = int(raw_interval)
        except (TypeError, ValueError) as err:
            raise ConfigurationError(f"Option 'polling_interval' must be an integer, got {raw_interval!r}") from err
        if interval_ms < 0:
            raise ConfigurationError("Option 'polling_interval' must not be negative")

        return cls(
            url=normalize_url(url),
            token=token or None,
            polling_interval=interval_ms / 1000.0,
        )
