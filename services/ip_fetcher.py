"""
services/ip_fetcher.py

Responsibility: Determines the host's current public IP address with one
non-blocking HTTP request and reports the outcome exactly once, either as an
awaitable FetchResult or through a completion handler.
Does NOT: retry, cache previous results, prefer an address family, or render
anything for the user.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import threading
from collections.abc import Callable

import httpx

from config import FetcherSettings, load_settings
from exceptions import ErrorKind, IpFetchError
from services.fetch_result import FetchResult

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[str | None, IpFetchError | None], None]


class FetchHandle:
    """
    Owns one in-flight fetch started by IpFetcher.fetch_ip_address().

    Delivery and cancellation race under a single lock, so the completion
    handler runs exactly once, or never if cancel() wins.
    """

    def __init__(self, completion: CompletionHandler) -> None:
        self._completion = completion
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._delivered = False
        self._cancelled = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    def cancel(self) -> bool:
        """
        Suppresses the completion handler and cancels the in-flight request.

        Safe to call from any thread.

        Returns:
            True if this call prevented delivery, False if the handler has
            already run or the fetch was already cancelled.
        """
        with self._lock:
            if self._delivered or self._cancelled:
                return False
            self._cancelled = True
            loop, task = self._loop, self._task

        # A fetch that has not attached yet sees the flag when it starts.
        if loop is not None and task is not None and not task.done():
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                # Loop already closed, so nothing is left in flight.
                logger.debug("Fetch loop closed before cancellation was scheduled.")
        return True

    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def done(self) -> bool:
        """True once the fetch has delivered its result or torn down after cancel()."""
        return self._finished.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Blocks the calling thread until the fetch has finished.

        Must not be called from the event loop that runs the fetch.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely.

        Returns:
            True if the fetch finished, False if the timeout elapsed first.
        """
        return self._finished.wait(timeout)

    # ---------------------------------------------------------------------------
    # Used by IpFetcher
    # ---------------------------------------------------------------------------

    def _attach(self, loop: asyncio.AbstractEventLoop, task: asyncio.Task | None) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._loop = loop
            self._task = task
            return True

    def _deliver(self, result: FetchResult) -> None:
        with self._lock:
            if self._cancelled or self._delivered:
                return
            self._delivered = True

        try:
            self._completion(result.ip, result.error)
        except Exception:
            logger.exception("Completion handler raised while handling the fetch result.")

    def _finish(self) -> None:
        self._finished.set()


class IpFetcher:
    """
    Fetches the host machine's current public IP address.

    Every fetch opens its own httpx.AsyncClient, so concurrent fetches share
    no connection or state. Tests inject an httpx transport (or use
    respx.mock) instead of reaching the real provider.

    Collaborators:
        - FetcherSettings: provider URL, timeout and User-Agent
        - httpx.AsyncBaseTransport: optional; replaces the network transport
    """

    def __init__(
        self,
        settings: FetcherSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialises the fetcher.

        Args:
            settings: Provider configuration. Defaults to FetcherSettings().
            transport: Optional httpx transport used for every request.
        """
        self._settings = settings or FetcherSettings()
        self._transport = transport

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def fetch(self) -> FetchResult:
        """
        Performs one request to the IP provider and returns its outcome.

        Failures are returned, not raised: the result carries an IpFetchError
        whose kind is one of the ErrorKind categories. The whole round trip is
        bounded by settings.timeout.

        Returns:
            A FetchResult holding either the IP address or the error.

        Raises:
            asyncio.CancelledError: Only if the surrounding task is cancelled.
        """
        url = self._settings.url
        timeout = self._settings.timeout
        logger.debug("Fetching public IP from %s (timeout %ss)", url, timeout)

        try:
            ip = await asyncio.wait_for(self._request_ip(), timeout=timeout)
        except asyncio.TimeoutError:
            error = IpFetchError(
                ErrorKind.TIMEOUT,
                f"No response from IP provider ({url}) within {timeout}s.",
            )
            logger.debug("Public IP fetch failed: %s", error)
            return FetchResult.failure(error)
        except IpFetchError as exc:
            logger.debug("Public IP fetch failed (%s): %s", exc.kind.value, exc)
            return FetchResult.failure(exc)

        logger.debug("Current public IP: %s", ip)
        return FetchResult.success(ip)

    def fetch_ip_address(self, completion: CompletionHandler) -> FetchHandle:
        """
        Starts a fetch in the background and returns immediately.

        With an event loop running in the calling thread, the fetch is
        scheduled as a task on it and the completion runs on that loop.
        Otherwise a daemon worker thread runs the fetch on its own loop and
        the completion runs on that thread.

        Args:
            completion: Called exactly once as completion(ip, None) on success
                        or completion(None, error) on failure, unless the
                        returned handle is cancelled first.

        Returns:
            A FetchHandle for cancelling or waiting on the fetch.
        """
        handle = FetchHandle(completion)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            # The handle keeps the task alive; the event loop only holds weak references.
            handle._task = loop.create_task(self._run(handle))
        else:
            worker = threading.Thread(
                target=asyncio.run,
                args=(self._run(handle),),
                name="ip-fetcher",
                daemon=True,
            )
            worker.start()

        return handle

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _run(self, handle: FetchHandle) -> None:
        """Runs one fetch on behalf of a handle and delivers its result."""
        try:
            if not handle._attach(asyncio.get_running_loop(), asyncio.current_task()):
                logger.debug("Fetch cancelled before it started.")
                return
            try:
                result = await self.fetch()
            except asyncio.CancelledError:
                logger.debug("Fetch from %s cancelled while in flight.", self._settings.url)
                return
            except Exception as exc:
                logger.exception("Unexpected error while fetching public IP from %s.", self._settings.url)
                error = IpFetchError(
                    ErrorKind.NETWORK_UNREACHABLE,
                    f"Fetching from IP provider ({self._settings.url}) failed unexpectedly: {exc}",
                )
                error.__cause__ = exc
                result = FetchResult.failure(error)
            handle._deliver(result)
        finally:
            handle._finish()

    async def _request_ip(self) -> str:
        """
        Sends the GET request and extracts the address from the response.

        Returns:
            The address text from the response body.

        Raises:
            IpFetchError: For any transport, status, or body failure.
        """
        url = self._settings.url
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._settings.timeout,
                headers={"User-Agent": self._settings.user_agent},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise IpFetchError(
                ErrorKind.TIMEOUT, f"IP provider ({url}) timed out: {exc}"
            ) from exc
        except httpx.TooManyRedirects as exc:
            raise IpFetchError(
                ErrorKind.UNEXPECTED_STATUS, f"IP provider ({url}) redirected too many times."
            ) from exc
        except httpx.DecodingError as exc:
            raise IpFetchError(
                ErrorKind.MALFORMED_RESPONSE, f"IP provider body could not be decoded: {exc}"
            ) from exc
        except httpx.RequestError as exc:
            raise IpFetchError(
                ErrorKind.NETWORK_UNREACHABLE, f"Could not reach IP provider ({url}): {exc}"
            ) from exc
        except httpx.InvalidURL as exc:
            raise IpFetchError(
                ErrorKind.NETWORK_UNREACHABLE, f"Invalid IP provider URL {url!r}: {exc}"
            ) from exc

        if not response.is_success:
            raise IpFetchError(
                ErrorKind.UNEXPECTED_STATUS,
                f"IP provider returned status {response.status_code}.",
                status_code=response.status_code,
            )

        return _parse_ip(response.content)


def _parse_ip(body: bytes) -> str:
    """
    Extracts an IP address from a plain-text or {"ip": ...} JSON body.

    Args:
        body: Raw response bytes.

    Returns:
        The stripped address text.

    Raises:
        IpFetchError: MALFORMED_RESPONSE if no valid address can be extracted.
    """
    try:
        text = body.decode("utf-8-sig").strip()
    except UnicodeDecodeError as exc:
        raise IpFetchError(
            ErrorKind.MALFORMED_RESPONSE, "IP provider returned a body that is not UTF-8."
        ) from exc

    if not text:
        raise IpFetchError(ErrorKind.MALFORMED_RESPONSE, "IP provider returned an empty body.")

    # NOTE: ipify-style providers answer {"ip": "1.2.3.4"} when asked for JSON.
    if text.startswith("{"):
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, RecursionError) as exc:
            raise IpFetchError(
                ErrorKind.MALFORMED_RESPONSE, f"IP provider returned invalid JSON: {exc}"
            ) from exc
        candidate = payload.get("ip") if isinstance(payload, dict) else None
        if not isinstance(candidate, str):
            raise IpFetchError(
                ErrorKind.MALFORMED_RESPONSE, "IP provider JSON has no string 'ip' member."
            )
        text = candidate.strip()

    try:
        ipaddress.ip_address(text)
    except ValueError as exc:
        raise IpFetchError(
            ErrorKind.MALFORMED_RESPONSE,
            f"IP provider returned {text[:64]!r}, which is not an IP address.",
        ) from exc

    return text


def fetch_ip_address(
    completion: CompletionHandler,
    settings: FetcherSettings | None = None,
) -> FetchHandle:
    """
    Starts a background fetch of the public IP address.

    Shorthand for IpFetcher(settings).fetch_ip_address(completion), with
    settings read from the environment when none are given.

    Args:
        completion: Called exactly once as completion(ip, error) unless cancelled.
        settings: Optional provider configuration.

    Returns:
        A FetchHandle for cancelling or waiting on the fetch.
    """
    return IpFetcher(settings or load_settings()).fetch_ip_address(completion)
