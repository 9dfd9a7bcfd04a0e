"""
exceptions.py

Responsibility: Defines the failure taxonomy and all custom exception classes
used across the package.
Does NOT: contain fetch logic, logging, or HTTP handling.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories reported by IpFetcher."""

    # The connection to the provider could not be established
    NETWORK_UNREACHABLE = "network_unreachable"

    # No complete response arrived within the configured bound
    TIMEOUT = "timeout"

    # The provider answered with a status outside the 2xx range
    UNEXPECTED_STATUS = "unexpected_status"

    # The response body cannot be interpreted as an IP address
    MALFORMED_RESPONSE = "malformed_response"


class IpFetchError(Exception):
    """
    Describes why the public IP address could not be determined.

    IpFetcher raises this internally and converts it into a FetchResult at
    the fetch boundary, so callers receive it as a value through their
    completion handler rather than as a raised exception.

    Attributes:
        kind: The ErrorKind category of the failure.
        status_code: The HTTP status for UNEXPECTED_STATUS, otherwise None.
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"IpFetchError(kind={self.kind.value!r}, message={str(self)!r})"


class ConfigLoadError(Exception):
    """
    Raised by load_settings() when an IP_FETCHER_* environment variable
    holds a value that cannot be used (e.g. a non-numeric timeout).
    """
