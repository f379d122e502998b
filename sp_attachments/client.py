"""SharePoint REST helper focused on list item attachments."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Mapping
from urllib.parse import urljoin

import requests

from .cancellation import CancellationToken, interruptible_sleep
from .config import Settings
from .digest_cache import DigestCache
from .endpoints import EndpointResolver
from .executor import RequestExecutor, RetryPolicy, SleepFn, has_payload
from .models import AttachmentRecord, HttpMethod, Operation, OperationContext, OutcomeEnvelope, RequestDescriptor
from .repository import AttachmentRepository

logger = logging.getLogger(__name__)


class SharePointClient:
    """Wires session, digest cache, executor and repository together.

    One instance per process (or per tenant) is enough; it is safe to share
    across threads.
    """

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = interruptible_sleep,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        if session is None and settings.sp_auth_mode != "none":
            from .auth import MsalBearerAuth

            self.session.auth = MsalBearerAuth(settings)

        self.digests = DigestCache(
            self.session,
            timeout=settings.request_timeout,
            default_ttl=settings.digest_default_ttl,
            safety_margin=settings.digest_safety_margin,
            clock=clock,
        )
        self.executor = RequestExecutor(
            self.session, self.digests, RetryPolicy.from_settings(settings), sleep=sleep
        )
        self.resolver = EndpointResolver()
        self.repository = AttachmentRepository(self.executor, self.resolver)

    def context(
        self,
        item_id: int | str | None,
        *,
        file_name: str | None = None,
        base_url: str | None = None,
        list_title: str | None = None,
        list_id: str | None = None,
    ) -> OperationContext:
        """Build an :class:`OperationContext`, filling gaps from settings."""
        return OperationContext(
            base_url=base_url or self.settings.sp_base_url or "",
            item_id=item_id,
            list_title=list_title or self.settings.sp_list_title,
            list_id=list_id or self.settings.sp_list_id,
            file_name=file_name,
        )

    def list_attachments(
        self, context: OperationContext, cancel: CancellationToken | None = None
    ) -> list[AttachmentRecord]:
        """Return the attachments of one list item."""
        return self.repository.list(context, cancel)

    def delete_attachment(self, context: OperationContext, cancel: CancellationToken | None = None) -> None:
        """Delete ``context.file_name`` from one list item."""
        self.repository.delete(context, cancel)

    def outcome(
        self, operation: Operation, context: OperationContext, cancel: CancellationToken | None = None
    ) -> OutcomeEnvelope:
        return self.repository.outcome(operation, context, cancel)

    def fetch_api(
        self,
        url: str,
        method: HttpMethod = "GET",
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        cancel: CancellationToken | None = None,
    ) -> Any:
        """Call any SharePoint REST URL and return parsed JSON, text, or None.

        Relative URLs resolve against ``SP_BASE_URL``. Dict and list bodies are
        sent as JSON unless a Content-Type header is supplied.
        """
        if not url.lower().startswith(("http://", "https://")):
            if not self.settings.sp_base_url:
                raise ValueError(f"Relative URL {url!r} needs SP_BASE_URL to be configured.")
            url = urljoin(self.settings.sp_base_url.rstrip("/") + "/", url.lstrip("/"))

        request_headers = dict(headers or {})
        has_content_type = any(key.lower() == "content-type" for key in request_headers)
        data: bytes | None = None
        if body is not None:
            if isinstance(body, (dict, list)) and not has_content_type:
                request_headers["Content-Type"] = "application/json; charset=utf-8"
                data = json.dumps(body).encode("utf-8")
            elif isinstance(body, str):
                data = body.encode("utf-8")
            else:
                data = body

        descriptor = RequestDescriptor(url=url, method=method, headers=request_headers, body=data)
        response = self.executor.execute(descriptor, cancel=cancel)
        if not has_payload(response):
            return None
        return self._parse_response_body(response)

    @staticmethod
    def _parse_response_body(response: requests.Response) -> Any:
        content_type = (response.headers.get("Content-Type") or "").lower()
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text
