"""In-memory form digest cache with single-flight refresh per site URL."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import TYPE_CHECKING, Any, Callable

import requests

from .errors import TokenAcquisitionError
from .models import ODATA_ACCEPT, TokenEntry
from .utils import normalize_base_url

if TYPE_CHECKING:
    from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class DigestCache:
    """Issue and reuse ``X-RequestDigest`` values, one entry per API base URL.

    Entries only live for the lifetime of the instance. While no usable entry
    exists, the first caller for a base URL issues ``/_api/contextinfo`` and
    every concurrent caller for that same URL waits on its future instead of
    issuing another request. Callers for other base URLs never wait.
    """

    DEFAULT_TTL_SECONDS = 900
    SAFETY_MARGIN_SECONDS = 20
    WAIT_POLL_SECONDS = 0.05

    def __init__(
        self,
        session: requests.Session,
        *,
        timeout: float = 30,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        safety_margin: float = SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.default_ttl = default_ttl
        self.safety_margin = safety_margin
        self._clock = clock
        self._entries: dict[str, TokenEntry] = {}
        self._inflight: dict[str, Future[str]] = {}
        self._lock = threading.Lock()

    def acquire(self, base_url: str, cancel: CancellationToken | None = None) -> str:
        """Return a usable digest for ``base_url``, issuing one if needed.

        A caller waiting on another thread's request still honours ``cancel``;
        the request itself carries on for the remaining waiters.
        """
        base = normalize_base_url(base_url)
        with self._lock:
            entry = self._entries.get(base)
            if entry and entry.is_usable(self._clock(), self.safety_margin):
                return entry.value
            future = self._inflight.get(base)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[base] = future

        if not owner:
            logger.debug("Waiting for in-flight digest request for %s", base)
            return self._wait(future, cancel)

        try:
            entry = self._issue(base)
        except Exception as exc:
            self._abandon(base, future, exc)
            raise
        except BaseException:
            # Waiters must not inherit KeyboardInterrupt/SystemExit from this thread.
            self._abandon(base, future, TokenAcquisitionError(base, "digest request was interrupted"))
            raise

        with self._lock:
            self._entries[base] = entry
            self._inflight.pop(base, None)
        future.set_result(entry.value)
        return entry.value

    def _wait(self, future: Future[str], cancel: CancellationToken | None) -> str:
        if cancel is None:
            return future.result()
        while True:
            cancel.raise_if_cancelled()
            try:
                return future.result(timeout=self.WAIT_POLL_SECONDS)
            except FutureTimeout:
                continue

    def _abandon(self, base: str, future: Future[str], exc: Exception) -> None:
        with self._lock:
            self._inflight.pop(base, None)
        future.set_exception(exc)

    def peek(self, base_url: str) -> TokenEntry | None:
        """Return the cached entry (usable or not) without issuing anything."""
        with self._lock:
            return self._entries.get(normalize_base_url(base_url))

    def invalidate(self, base_url: str) -> None:
        with self._lock:
            self._entries.pop(normalize_base_url(base_url), None)

    def _issue(self, base: str) -> TokenEntry:
        url = f"{base}/_api/contextinfo"
        logger.debug("Requesting form digest from %s", url)
        try:
            response = self.session.request(
                "POST", url, headers={"Accept": ODATA_ACCEPT}, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise TokenAcquisitionError(base, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise TokenAcquisitionError(
                base, f"contextinfo returned HTTP {response.status_code}", status=response.status_code
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenAcquisitionError(base, "contextinfo response was not JSON") from exc

        info = self._context_info(payload)
        value = info.get("FormDigestValue")
        if not value or not isinstance(value, str):
            raise TokenAcquisitionError(base, "contextinfo response is missing FormDigestValue")

        ttl = self._ttl_seconds(info.get("FormDigestTimeoutSeconds"))
        logger.info("Obtained form digest for %s (valid for %ss)", base, int(ttl))
        return TokenEntry(value=value, expires_at=self._clock() + ttl)

    @staticmethod
    def _context_info(payload: Any) -> dict:
        if not isinstance(payload, dict):
            return {}
        # odata=verbose wraps the object in d.GetContextWebInformation
        wrapper = payload.get("d")
        if isinstance(wrapper, dict) and isinstance(wrapper.get("GetContextWebInformation"), dict):
            return wrapper["GetContextWebInformation"]
        return payload

    def _ttl_seconds(self, raw: Any) -> float:
        try:
            ttl = float(raw)
        except (TypeError, ValueError):
            return float(self.default_ttl)
        return ttl if ttl > 0 else float(self.default_ttl)
