"""Walk candidate endpoints until one lists or deletes attachments."""

from __future__ import annotations

import logging

from .cancellation import CancellationToken
from .endpoints import EndpointResolver
from .errors import (
    AllCandidatesFailed,
    AttachmentAccessError,
    HttpStatusError,
    NetworkFailure,
    NormalizationError,
    TransientFailureExhausted,
)
from .executor import RequestExecutor, has_payload
from .models import AttachmentRecord, Candidate, Operation, OperationContext, OutcomeEnvelope
from .normalizer import normalize_attachments

logger = logging.getLogger(__name__)

# Failures that only disqualify the current endpoint shape.
CANDIDATE_ERRORS = (HttpStatusError, NetworkFailure, NormalizationError, TransientFailureExhausted)


class AttachmentRepository:
    """Sequential first-success-wins iteration over resolver candidates.

    Context, digest and cancellation errors abort immediately; endpoint-shape
    and transient errors move on to the next candidate. When every candidate
    fails the caller gets one :class:`AllCandidatesFailed` carrying the last
    error seen.
    """

    def __init__(self, executor: RequestExecutor, resolver: EndpointResolver | None = None) -> None:
        self.executor = executor
        self.resolver = resolver or EndpointResolver()

    def list(self, context: OperationContext, cancel: CancellationToken | None = None) -> list[AttachmentRecord]:
        candidates = self.resolver.resolve(Operation.LIST_ATTACHMENTS, context)
        failures: list[tuple[str, AttachmentAccessError]] = []
        for candidate in candidates:
            self._check(cancel)
            (descriptor,) = candidate.attempts
            try:
                response = self.executor.execute(descriptor, cancel=cancel, base_url=context.base_url)
                records = normalize_attachments(
                    response.content if has_payload(response) else None,
                    response.headers.get("Content-Type"),
                )
            except CANDIDATE_ERRORS as exc:
                self._record_failure(candidate, exc, failures)
                continue
            logger.info(
                "Listed %d attachments for item %s via %s", len(records), context.item_id, candidate.label
            )
            return records
        raise AllCandidatesFailed(failures[-1][1], failures)

    def delete(self, context: OperationContext, cancel: CancellationToken | None = None) -> None:
        candidates = self.resolver.resolve(Operation.DELETE_ATTACHMENT, context)
        failures: list[tuple[str, AttachmentAccessError]] = []
        for candidate in candidates:
            for descriptor in candidate.attempts:
                self._check(cancel)
                try:
                    self.executor.execute(descriptor, cancel=cancel, base_url=context.base_url)
                except CANDIDATE_ERRORS as exc:
                    self._record_failure(candidate, exc, failures, method=descriptor.method)
                    continue
                logger.info(
                    "Deleted attachment '%s' from item %s via %s (%s)",
                    context.file_name,
                    context.item_id,
                    candidate.label,
                    descriptor.method,
                )
                return
        raise AllCandidatesFailed(failures[-1][1], failures)

    def outcome(
        self,
        operation: Operation,
        context: OperationContext,
        cancel: CancellationToken | None = None,
    ) -> OutcomeEnvelope:
        """Run ``operation`` and fold any access error into an :class:`OutcomeEnvelope`."""
        try:
            if operation is Operation.LIST_ATTACHMENTS:
                return OutcomeEnvelope.ok(self.list(context, cancel))
            self.delete(context, cancel)
            return OutcomeEnvelope.ok()
        except AttachmentAccessError as exc:
            return OutcomeEnvelope.failed(exc)

    @staticmethod
    def _check(cancel: CancellationToken | None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled()

    @staticmethod
    def _record_failure(
        candidate: Candidate,
        exc: AttachmentAccessError,
        failures: list[tuple[str, AttachmentAccessError]],
        method: str | None = None,
    ) -> None:
        label = f"{candidate.label} ({method})" if method else candidate.label
        logger.warning("Candidate %s failed: %s", label, exc)
        failures.append((label, exc))
