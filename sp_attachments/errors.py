"""Exception types raised by the SharePoint attachment access layer.

Per-candidate failures (:class:`HttpStatusError`, :class:`NormalizationError`,
:class:`TransientFailureExhausted`) are recovered by the repository, which
moves on to the next endpoint shape. Only :class:`AllCandidatesFailed`,
:class:`InsufficientContextError`, :class:`TokenAcquisitionError` and
:class:`OperationCancelled` reach the caller.
"""

from __future__ import annotations

from typing import Any, Sequence


class AttachmentAccessError(RuntimeError):
    """Base class carrying a stable ``kind`` for callers that render messages."""

    kind = "attachment_access"

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.kind, "message": str(self)}


class InsufficientContextError(AttachmentAccessError):
    """The operation context lacks the fields needed to build any request."""

    kind = "insufficient_context"

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing: list[str] = list(missing)
        super().__init__(f"Operation context is missing: {', '.join(self.missing)}")

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["missing"] = self.missing
        return payload


class TokenAcquisitionError(AttachmentAccessError):
    """The form digest could not be issued for a base URL."""

    kind = "token_acquisition"

    def __init__(self, base_url: str, message: str, *, status: int | None = None) -> None:
        super().__init__(f"Unable to obtain request digest for {base_url}: {message}")
        self.base_url = base_url
        self.status = status


class HttpStatusError(AttachmentAccessError):
    """The server answered with a non-retryable, non-2xx status."""

    kind = "http_status"

    def __init__(self, status: int, method: str, url: str, body: str = "") -> None:
        detail = f" ({body})" if body else ""
        super().__init__(f"{method} {url} returned HTTP {status}{detail}")
        self.status = status
        self.method = method
        self.url = url
        self.body = body

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status
        return payload


class TransientFailureExhausted(AttachmentAccessError):
    """Repeated 429/503 responses or network failures used up the retry budget."""

    kind = "transient_exhausted"

    def __init__(self, method: str, url: str, attempts: int, last_status: int | None) -> None:
        cause = f"HTTP {last_status}" if last_status is not None else "network failure"
        super().__init__(f"{method} {url} still failing after {attempts} attempts ({cause})")
        self.method = method
        self.url = url
        self.attempts = attempts
        self.last_status = last_status

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["attempts"] = self.attempts
        payload["last_status"] = self.last_status
        return payload


class NetworkFailure(AttachmentAccessError):
    """The transport failed in a way retrying the same request will not fix."""

    kind = "network"

    def __init__(self, method: str, url: str, cause: Exception) -> None:
        super().__init__(f"{method} {url} failed: {type(cause).__name__}: {cause}")
        self.method = method
        self.url = url


class NormalizationError(AttachmentAccessError):
    """A 2xx body did not match any known attachment payload shape."""

    kind = "normalization"


class OperationCancelled(AttachmentAccessError):
    """The caller cancelled the operation at a suspension point."""

    kind = "cancelled"

    def __init__(self, message: str = "Operation cancelled.") -> None:
        super().__init__(message)


class AllCandidatesFailed(AttachmentAccessError):
    """Every endpoint candidate failed; ``last_error`` is the most recent cause."""

    kind = "all_candidates_failed"

    def __init__(
        self,
        last_error: AttachmentAccessError,
        failures: Sequence[tuple[str, AttachmentAccessError]] = (),
    ) -> None:
        self.last_error = last_error
        self.failures: list[tuple[str, AttachmentAccessError]] = list(failures)
        super().__init__(
            f"All endpoint candidates failed ({len(self.failures) or 1} attempted); last error: {last_error}"
        )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["last_error"] = self.last_error.to_payload()
        payload["candidates"] = [label for label, _ in self.failures]
        return payload
