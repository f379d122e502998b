"""Execute one request descriptor with digest injection, backoff and throttling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import requests
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from .cancellation import CancellationToken, interruptible_sleep
from .digest_cache import DigestCache
from .errors import HttpStatusError, NetworkFailure, TransientFailureExhausted
from .models import DIGEST_HEADER, ODATA_ACCEPT, RequestDescriptor
from .utils import api_base_from_url, excerpt, parse_rate_limit_hint, parse_retry_after

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 503})

SleepFn = Callable[[float, Optional[CancellationToken]], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and pacing for a single descriptor."""

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 60.0
    low_water: int = 10
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            low_water=settings.rate_limit_low_water,
            timeout=settings.request_timeout,
        )

    def backoff(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` is zero-based)."""
        return min((retry_after or 0.0) + self.base_delay * (2**attempt), self.max_delay)


class RetryableResponse(Exception):
    """Internal signal: the server answered 429/503."""

    def __init__(self, response: requests.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response
        self.retry_after = parse_retry_after(response.headers.get("Retry-After"))


TRANSIENT_EXCEPTIONS = (
    RetryableResponse,
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


class _RetryAfterPlusBackoff(wait_base):
    """Server Retry-After (when given) plus exponential backoff."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        retry_after = None
        outcome = retry_state.outcome
        if outcome is not None:
            exc = outcome.exception()
            if isinstance(exc, RetryableResponse):
                retry_after = exc.retry_after
        return self.policy.backoff(retry_state.attempt_number - 1, retry_after)


class RequestExecutor:
    """Send descriptors through a ``requests`` session under a :class:`RetryPolicy`."""

    def __init__(
        self,
        session: requests.Session,
        digests: DigestCache,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = interruptible_sleep,
    ) -> None:
        self.session = session
        self.digests = digests
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def execute(
        self,
        descriptor: RequestDescriptor,
        *,
        cancel: CancellationToken | None = None,
        base_url: str | None = None,
    ) -> requests.Response:
        """Return the 2xx response for ``descriptor`` or raise a typed error.

        429/503, connection failures and bodies broken mid-transfer are retried
        up to ``max_attempts`` times in total. Any other non-2xx status raises
        :class:`HttpStatusError` and any other transport error raises
        :class:`NetworkFailure`, both straight away.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()
        descriptor = self._prepare(descriptor, base_url, cancel)

        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=_RetryAfterPlusBackoff(self.policy),
            retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
            sleep=lambda seconds: self._sleep(seconds, cancel),
            before_sleep=self._log_retry,
            reraise=False,
        )
        try:
            return retrying(self._send, descriptor, cancel)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            status = last.response.status_code if isinstance(last, RetryableResponse) else None
            raise TransientFailureExhausted(
                descriptor.method, descriptor.url, exc.last_attempt.attempt_number, status
            ) from last

    def _prepare(
        self, descriptor: RequestDescriptor, base_url: str | None, cancel: CancellationToken | None
    ) -> RequestDescriptor:
        extra: dict[str, str] = {}
        if descriptor.header("Accept") is None:
            extra["Accept"] = ODATA_ACCEPT
        if descriptor.is_mutating and not descriptor.header(DIGEST_HEADER):
            extra[DIGEST_HEADER] = self.digests.acquire(
                base_url or api_base_from_url(descriptor.url), cancel=cancel
            )
        return descriptor.with_headers(extra) if extra else descriptor

    def _send(self, descriptor: RequestDescriptor, cancel: CancellationToken | None) -> requests.Response:
        if cancel is not None:
            cancel.raise_if_cancelled()
        logger.debug("%s %s", descriptor.method, descriptor.url)
        try:
            response = self.session.request(
                descriptor.method,
                descriptor.url,
                headers=dict(descriptor.headers),
                data=descriptor.body,
                timeout=self.policy.timeout,
            )
        except TRANSIENT_EXCEPTIONS:
            raise
        except requests.RequestException as exc:
            raise NetworkFailure(descriptor.method, descriptor.url, exc) from exc
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableResponse(response)

        self._throttle(response, cancel)
        if not 200 <= response.status_code < 300:
            raise HttpStatusError(
                response.status_code, descriptor.method, descriptor.url, excerpt(response.text or "")
            )
        return response

    def _throttle(self, response: requests.Response, cancel: CancellationToken | None) -> None:
        hint = parse_rate_limit_hint(response.headers)
        if hint is None or hint.remaining >= self.policy.low_water or hint.reset_after <= 0:
            return
        logger.info(
            "Rate limit budget low (%d remaining); pausing %.2fs before continuing",
            hint.remaining,
            hint.reset_after,
        )
        self._sleep(hint.reset_after, cancel)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Transient failure (%s) on attempt %d/%d; retrying in %.2fs",
            exc,
            retry_state.attempt_number,
            self.policy.max_attempts,
            delay,
        )


def has_payload(response: requests.Response) -> bool:
    """False for 204 No Content and empty bodies."""
    return response.status_code != 204 and bool(response.content)
