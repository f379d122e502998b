"""Fake ``requests`` plumbing shared by the test modules."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import requests
from requests.structures import CaseInsensitiveDict

BASE = "https://contoso.sharepoint.com/sites/hr"
LIST_ID = "6f1c2a3b-1111-2222-3333-444455556666"
LIST_TITLE = "Leave Requests"
CONTEXTINFO = f"{BASE}/_api/contextinfo"


def make_response(
    status: int = 200,
    json_body: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    merged = dict(headers or {})
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
        merged.setdefault("Content-Type", "application/json;odata=nometadata;charset=utf-8")
    elif text is not None:
        content = text.encode("utf-8")
    else:
        content = b""
    response._content = content
    response.headers = CaseInsensitiveDict(merged)
    response.encoding = "utf-8"
    return response


def digest_response(value: str = "0xDIGEST,1", ttl: int | None = 1800) -> requests.Response:
    body: dict[str, Any] = {"FormDigestValue": value}
    if ttl is not None:
        body["FormDigestTimeoutSeconds"] = ttl
    return make_response(200, json_body=body)


def attachment_files(*names: str) -> list[dict[str, str]]:
    return [
        {"FileName": name, "ServerRelativeUrl": f"/sites/hr/Lists/Leave/Attachments/7/{name}"}
        for name in names
    ]


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    data: Any = None


@dataclass
class FakeSession:
    """Duck-typed ``requests.Session`` driven by a handler or a scripted list."""

    handler: Callable[[RecordedCall], Any] | None = None
    script: list[Any] = field(default_factory=list)
    calls: list[RecordedCall] = field(default_factory=list)
    auth: Any = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def request(self, method, url, headers=None, data=None, timeout=None):
        call = RecordedCall(method=method, url=url, headers=dict(headers or {}), data=data)
        with self._lock:
            self.calls.append(call)
            if self.handler is None:
                result = self.script.pop(0)
        if self.handler is not None:
            result = self.handler(call)
        if isinstance(result, BaseException):
            raise result
        return result

    def urls(self, exclude: Iterable[str] = (CONTEXTINFO,)) -> list[str]:
        skipped = set(exclude)
        return [call.url for call in self.calls if call.url not in skipped]


class SleepRecorder:
    """Drop-in for the executor's sleep that just records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds, cancel=None) -> None:
        if cancel is not None:
            cancel.raise_if_cancelled()
        self.delays.append(seconds)
