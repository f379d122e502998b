"""Candidate REST endpoint shapes for list-item attachment operations.

Deployments disagree on which request shape they accept: some only route
``/_api/web/...`` while others also answer ``/web/...``; some lists are best
addressed by GUID, others only by title; some proxies reject the DELETE verb.
The resolver spells every plausible shape out, in a fixed order, so the
repository can try them one after another:

* GUID-keyed lists before title-keyed lists (GUIDs survive renames),
* ``/_api``-prefixed paths before un-prefixed ones,
* for listing, the ``items(<id>)`` lookup before the ``$filter=Id eq <id>`` query,
* for deletion, DELETE before POST with ``X-HTTP-Method: DELETE`` on the same URL.
"""

from __future__ import annotations

import logging

from .errors import InsufficientContextError
from .models import ODATA_ACCEPT, Candidate, Operation, OperationContext, RequestDescriptor
from .utils import normalize_base_url, odata_literal

logger = logging.getLogger(__name__)

API_PREFIXES = ("/_api", "")
ATTACHMENT_QUERY = "$select=AttachmentFiles&$expand=AttachmentFiles"


class EndpointResolver:
    """Turn an operation + context into an ordered list of :class:`Candidate`."""

    def resolve(self, operation: Operation, context: OperationContext) -> list[Candidate]:
        base, item_id = self._validate(operation, context)
        roots = self._list_roots(context)
        if operation is Operation.LIST_ATTACHMENTS:
            candidates = self._list_candidates(base, roots, item_id)
        else:
            candidates = self._delete_candidates(base, roots, item_id, context.file_name or "")
        logger.debug(
            "Resolved %d candidate endpoints for %s on item %s", len(candidates), operation.value, item_id
        )
        return candidates

    @staticmethod
    def _validate(operation: Operation, context: OperationContext) -> tuple[str, int]:
        missing: list[str] = []
        base = normalize_base_url(context.base_url or "")
        if not base:
            missing.append("base_url")
        item_id = _coerce_item_id(context.item_id)
        if item_id is None:
            missing.append("item_id")
        if not (context.list_title or "").strip() and not (context.list_id or "").strip():
            missing.append("list_title or list_id")
        if operation is Operation.DELETE_ATTACHMENT and not (context.file_name or "").strip():
            missing.append("file_name")
        if missing:
            raise InsufficientContextError(missing)
        return base, item_id

    @staticmethod
    def _list_roots(context: OperationContext) -> list[tuple[str, str]]:
        roots: list[tuple[str, str]] = []
        list_id = (context.list_id or "").strip().strip("{}")
        if list_id:
            roots.append(("guid", f"lists(guid'{odata_literal(list_id)}')"))
        list_title = (context.list_title or "").strip()
        if list_title:
            roots.append(("title", f"lists/getbytitle('{odata_literal(list_title)}')"))
        return roots

    @staticmethod
    def _list_candidates(base: str, roots: list[tuple[str, str]], item_id: int) -> list[Candidate]:
        headers = {"Accept": ODATA_ACCEPT}
        candidates: list[Candidate] = []
        for kind, root in roots:
            for prefix in API_PREFIXES:
                web = f"{base}{prefix}/web/{root}"
                path_style = "api" if prefix else "bare"
                shapes = (
                    ("item", f"{web}/items({item_id})?{ATTACHMENT_QUERY}"),
                    ("filter", f"{web}/items?$filter=Id%20eq%20{item_id}&{ATTACHMENT_QUERY}"),
                )
                for shape, url in shapes:
                    descriptor = RequestDescriptor(url=url, method="GET", headers=headers)
                    candidates.append(Candidate(label=f"{kind}/{path_style}/{shape}", attempts=(descriptor,)))
        return candidates

    @staticmethod
    def _delete_candidates(
        base: str, roots: list[tuple[str, str]], item_id: int, file_name: str
    ) -> list[Candidate]:
        candidates: list[Candidate] = []
        for kind, root in roots:
            url = (
                f"{base}/_api/web/{root}/items({item_id})"
                f"/AttachmentFiles/getByFileName('{odata_literal(file_name.strip())}')"
            )
            direct = RequestDescriptor(
                url=url, method="DELETE", headers={"Accept": ODATA_ACCEPT, "IF-MATCH": "*"}
            )
            override = RequestDescriptor(
                url=url,
                method="POST",
                headers={"Accept": ODATA_ACCEPT, "IF-MATCH": "*", "X-HTTP-Method": "DELETE"},
            )
            candidates.append(Candidate(label=f"{kind}/api/delete", attempts=(direct, override)))
        return candidates


def _coerce_item_id(raw: int | str | None) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    return value if value > 0 else None
