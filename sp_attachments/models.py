"""Typed containers shared across the attachment access layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Literal, Mapping, Optional

from .errors import AttachmentAccessError

HttpMethod = Literal["GET", "POST", "DELETE", "PATCH", "MERGE"]

ODATA_ACCEPT = "application/json;odata=nometadata"
DIGEST_HEADER = "X-RequestDigest"


class Operation(str, Enum):
    """Logical operations the repository knows how to route."""

    LIST_ATTACHMENTS = "list_attachments"
    DELETE_ATTACHMENT = "delete_attachment"


@dataclass(frozen=True)
class RequestDescriptor:
    """One fully-built HTTP request. Never mutated once constructed."""

    url: str
    method: HttpMethod = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def is_mutating(self) -> bool:
        return self.method != "GET"

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def with_headers(self, extra: Mapping[str, str]) -> "RequestDescriptor":
        """Return a copy with ``extra`` headers merged in."""
        headers = dict(self.headers)
        headers.update(extra)
        return RequestDescriptor(url=self.url, method=self.method, headers=headers, body=self.body)


@dataclass(frozen=True)
class Candidate:
    """One endpoint shape; ``attempts`` are tried in order for the same URL."""

    label: str
    attempts: tuple[RequestDescriptor, ...]


@dataclass(frozen=True)
class TokenEntry:
    """A cached form digest and the monotonic instant it expires at."""

    value: str
    expires_at: float

    def is_usable(self, now: float, safety_margin: float) -> bool:
        return now < self.expires_at - safety_margin


@dataclass(frozen=True)
class RateLimitHint:
    """Server-advertised request budget."""

    remaining: int
    reset_after: float


@dataclass(frozen=True)
class AttachmentRecord:
    """Metadata for one list item attachment."""

    file_name: str
    server_relative_url: str


@dataclass(frozen=True)
class OperationContext:
    """Identifiers supplied by the caller for one list/delete call."""

    base_url: str
    item_id: int | str | None
    list_title: Optional[str] = None
    list_id: Optional[str] = None
    file_name: Optional[str] = None


@dataclass
class OutcomeEnvelope:
    """Non-raising result of a repository operation."""

    success: bool
    value: Optional[list[AttachmentRecord]] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, value: Optional[list[AttachmentRecord]] = None) -> "OutcomeEnvelope":
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, error: AttachmentAccessError) -> "OutcomeEnvelope":
        return cls(success=False, error_kind=error.kind, error_message=str(error))
