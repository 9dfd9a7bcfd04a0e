"""
services/fetch_result.py

Responsibility: Defines FetchResult, the success-or-error outcome of one
public IP fetch.
Does NOT: make HTTP calls or decide which ErrorKind a failure belongs to.
"""

from __future__ import annotations

from dataclasses import dataclass

from exceptions import IpFetchError


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of a single fetch: exactly one of ip or error is populated.

    Use the success() and failure() constructors rather than building the
    dataclass directly.
    """

    # Address text as returned by the provider, whitespace stripped
    ip: str | None = None

    # Populated when the fetch failed
    error: IpFetchError | None = None

    def __post_init__(self) -> None:
        if (self.ip is None) == (self.error is None):
            raise ValueError("FetchResult requires exactly one of ip or error.")

    @classmethod
    def success(cls, ip: str) -> FetchResult:
        return cls(ip=ip)

    @classmethod
    def failure(cls, error: IpFetchError) -> FetchResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None
