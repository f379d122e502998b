"""Resilient access to SharePoint list item attachments."""

from .cancellation import CancellationToken
from .client import SharePointClient
from .errors import (
    AllCandidatesFailed,
    AttachmentAccessError,
    HttpStatusError,
    NetworkFailure,
    InsufficientContextError,
    NormalizationError,
    OperationCancelled,
    TokenAcquisitionError,
    TransientFailureExhausted,
)
from .models import AttachmentRecord, Operation, OperationContext, OutcomeEnvelope

__all__ = [
    "AllCandidatesFailed",
    "AttachmentAccessError",
    "AttachmentRecord",
    "CancellationToken",
    "HttpStatusError",
    "InsufficientContextError",
    "NetworkFailure",
    "NormalizationError",
    "Operation",
    "OperationCancelled",
    "OperationContext",
    "OutcomeEnvelope",
    "SharePointClient",
    "TokenAcquisitionError",
    "TransientFailureExhausted",
]
