"""Pytest configuration and fixtures for the attachment access tests."""

from __future__ import annotations

import os

import pytest

from helpers import BASE, LIST_ID, LIST_TITLE, FakeSession, SleepRecorder
from sp_attachments.digest_cache import DigestCache
from sp_attachments.executor import RequestExecutor, RetryPolicy
from sp_attachments.models import OperationContext
from sp_attachments.repository import AttachmentRepository


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep developer SP_* variables from leaking into Settings."""
    for key in list(os.environ):
        if key.startswith("SP_") or key == "LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=60.0, low_water=10, timeout=5)


@pytest.fixture
def build_repository(sleeps, policy):
    """Return a factory producing (repository, session) around a fake session."""

    def _build(handler=None, script=None, retry_policy=None):
        session = FakeSession(handler=handler, script=list(script or []))
        digests = DigestCache(session)
        executor = RequestExecutor(session, digests, retry_policy or policy, sleep=sleeps)
        return AttachmentRepository(executor), session

    return _build


@pytest.fixture
def full_context():
    return OperationContext(base_url=BASE, item_id=7, list_title=LIST_TITLE, list_id=LIST_ID)
