"""
config.py

Responsibility: Holds the provider endpoint, timeout, and User-Agent used by
IpFetcher, and loads them from IP_FETCHER_* environment variables.
Does NOT: make HTTP calls or validate provider responses.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass

from exceptions import ConfigLoadError

logger = logging.getLogger(__name__)

__version__ = "1.0.0"

# NOTE: api.ipify.org returns the caller's public IP as plain text.
DEFAULT_PROVIDER_URL = "https://api.ipify.org"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = f"ip-fetcher/{__version__}"


@dataclass(frozen=True)
class FetcherSettings:
    """Immutable configuration for a single IpFetcher."""

    # Endpoint that echoes the caller's public IP in its response body
    url: str = DEFAULT_PROVIDER_URL

    # Upper bound in seconds on the whole request/response round trip
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    # Sent as the User-Agent header on every request
    user_agent: str = DEFAULT_USER_AGENT


def load_settings() -> FetcherSettings:
    """
    Builds FetcherSettings from the environment, falling back to defaults.

    Reads IP_FETCHER_URL, IP_FETCHER_TIMEOUT and IP_FETCHER_USER_AGENT.

    Returns:
        A FetcherSettings instance.

    Raises:
        ConfigLoadError: If the URL is blank, the timeout is not a finite positive
                         number, or the User-Agent is not ASCII.
    """
    url = os.getenv("IP_FETCHER_URL", DEFAULT_PROVIDER_URL).strip()
    if not url:
        raise ConfigLoadError("IP_FETCHER_URL must not be empty.")

    raw_timeout = os.getenv("IP_FETCHER_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS))
    try:
        timeout = float(raw_timeout)
    except ValueError as exc:
        raise ConfigLoadError(
            f"IP_FETCHER_TIMEOUT must be a number of seconds, got {raw_timeout!r}."
        ) from exc
    if not math.isfinite(timeout) or timeout <= 0:
        raise ConfigLoadError(f"IP_FETCHER_TIMEOUT must be a finite positive number, got {timeout}.")

    user_agent = os.getenv("IP_FETCHER_USER_AGENT", DEFAULT_USER_AGENT)
    # httpx encodes header values as ASCII.
    if not user_agent.isascii():
        raise ConfigLoadError(f"IP_FETCHER_USER_AGENT must be ASCII, got {user_agent!r}.")

    settings = FetcherSettings(url=url, timeout=timeout, user_agent=user_agent)
    logger.debug("Loaded fetcher settings: %s", settings)
    return settings
