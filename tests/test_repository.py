"""Tests for candidate iteration in the attachment repository."""

from __future__ import annotations

import pytest
import requests

from helpers import BASE, CONTEXTINFO, LIST_ID, LIST_TITLE, attachment_files, digest_response, make_response
from sp_attachments.cancellation import CancellationToken
from sp_attachments.endpoints import EndpointResolver
from sp_attachments.errors import (
    AllCandidatesFailed,
    HttpStatusError,
    InsufficientContextError,
    OperationCancelled,
    TokenAcquisitionError,
    TransientFailureExhausted,
)
from sp_attachments.executor import RetryPolicy
from sp_attachments.models import AttachmentRecord, Operation, OperationContext


def _delete_context(**overrides) -> OperationContext:
    fields = dict(base_url=BASE, item_id=7, list_title=LIST_TITLE, list_id=LIST_ID, file_name="a.pdf")
    fields.update(overrides)
    return OperationContext(**fields)


class TestList:
    def test_guid_candidate_wins_and_title_forms_are_never_tried(self, build_repository, full_context):
        def handler(call):
            if "lists(guid'" in call.url and "/_api/" in call.url and "items(7)" in call.url:
                return make_response(200, json_body={"AttachmentFiles": attachment_files("a.pdf")})
            return make_response(404)

        repository, session = build_repository(handler=handler)

        records = repository.list(full_context)

        assert records == [AttachmentRecord("a.pdf", "/sites/hr/Lists/Leave/Attachments/7/a.pdf")]
        assert len(session.calls) == 1
        assert not any("getbytitle" in call.url for call in session.calls)

    def test_falls_back_in_documented_order(self, build_repository, full_context):
        candidates = EndpointResolver().resolve(Operation.LIST_ATTACHMENTS, full_context)
        expected_urls = [c.attempts[0].url for c in candidates]
        winner = expected_urls[-1]
        assert candidates[-1].label == "title/bare/filter"

        def handler(call):
            if call.url == winner:
                return make_response(200, json_body={"value": [{"AttachmentFiles": attachment_files("b.png")}]})
            if expected_urls.index(call.url) % 2:
                return make_response(200, text="<html>not json</html>", headers={"Content-Type": "text/html"})
            return make_response(404)

        repository, session = build_repository(handler=handler)

        records = repository.list(full_context)

        assert [r.file_name for r in records] == ["b.png"]
        assert session.urls() == expected_urls

    def test_transient_exhaustion_moves_to_next_candidate(self, build_repository, full_context):
        def handler(call):
            first_candidate = "guid" in call.url and "/_api/" in call.url and "items(7)?" in call.url
            if first_candidate:
                return make_response(503)
            return make_response(200, json_body={"value": []})

        repository, session = build_repository(handler=handler, retry_policy=RetryPolicy(max_attempts=2, base_delay=0))

        assert repository.list(full_context) == []
        assert len(session.calls) == 3

    def test_transport_error_moves_to_next_candidate(self, build_repository, full_context):
        def handler(call):
            if len(session.calls) == 1:
                return requests.TooManyRedirects("Exceeded 30 redirects.")
            return make_response(200, json_body={"AttachmentFiles": attachment_files("a.pdf")})

        repository, session = build_repository(handler=handler)

        assert [r.file_name for r in repository.list(full_context)] == ["a.pdf"]
        assert len(session.calls) == 2

    def test_all_candidates_failing_reports_last_error(self, build_repository, full_context):
        candidates = EndpointResolver().resolve(Operation.LIST_ATTACHMENTS, full_context)
        last_url = candidates[-1].attempts[0].url

        def handler(call):
            return make_response(400 if call.url == last_url else 404, text="bad")

        repository, session = build_repository(handler=handler)

        with pytest.raises(AllCandidatesFailed) as excinfo:
            repository.list(full_context)

        assert isinstance(excinfo.value.last_error, HttpStatusError)
        assert excinfo.value.last_error.status == 400
        assert len(excinfo.value.failures) == 8
        assert excinfo.value.to_payload()["last_error"]["status"] == 400

    def test_insufficient_context_makes_no_calls(self, build_repository):
        repository, session = build_repository(script=[])

        with pytest.raises(InsufficientContextError):
            repository.list(OperationContext(base_url=BASE, item_id=7))

        assert session.calls == []

    def test_cancelled_before_start_makes_no_calls(self, build_repository, full_context):
        repository, session = build_repository(script=[])
        cancel = CancellationToken()
        cancel.cancel()

        with pytest.raises(OperationCancelled):
            repository.list(full_context, cancel)

        assert session.calls == []


class TestDelete:
    def test_override_on_same_url_after_delete_rejected(self, build_repository):
        def handler(call):
            if call.url == CONTEXTINFO:
                return digest_response()
            if call.method == "DELETE":
                return make_response(403, text="verb blocked")
            if call.headers.get("X-HTTP-Method") == "DELETE":
                return make_response(200)
            return make_response(500)

        repository, session = build_repository(handler=handler)

        assert repository.delete(_delete_context()) is None

        attachment_calls = [c for c in session.calls if c.url != CONTEXTINFO]
        assert [c.method for c in attachment_calls] == ["DELETE", "POST"]
        assert len({c.url for c in attachment_calls}) == 1
        assert "lists(guid'" in attachment_calls[0].url
        assert all(c.headers["X-RequestDigest"] == "0xDIGEST,1" for c in attachment_calls)

    def test_second_url_tried_when_both_verbs_fail(self, build_repository):
        def handler(call):
            if call.url == CONTEXTINFO:
                return digest_response()
            if "getbytitle" in call.url:
                return make_response(204)
            return make_response(404)

        repository, session = build_repository(handler=handler)

        repository.delete(_delete_context())

        assert [(c.method, "guid" in c.url) for c in session.calls if c.url != CONTEXTINFO] == [
            ("DELETE", True),
            ("POST", True),
            ("DELETE", False),
        ]

    def test_sequential_deletes_share_one_digest(self, build_repository):
        def handler(call):
            if call.url == CONTEXTINFO:
                return digest_response()
            return make_response(200)

        repository, session = build_repository(handler=handler)

        repository.delete(_delete_context(file_name="a.pdf"))
        repository.delete(_delete_context(file_name="b.pdf"))

        assert sum(1 for c in session.calls if c.url == CONTEXTINFO) == 1

    def test_digest_failure_is_terminal(self, build_repository):
        repository, session = build_repository(handler=lambda call: make_response(403, text="no"))

        with pytest.raises(TokenAcquisitionError):
            repository.delete(_delete_context())

        assert [c.url for c in session.calls] == [CONTEXTINFO]

    def test_already_absent_file_surfaces_not_found(self, build_repository):
        def handler(call):
            if call.url == CONTEXTINFO:
                return digest_response()
            return make_response(404, text="File Not Found.")

        repository, session = build_repository(handler=handler)

        with pytest.raises(AllCandidatesFailed) as excinfo:
            repository.delete(_delete_context())

        assert excinfo.value.last_error.status == 404
        assert len(excinfo.value.failures) == 4

    def test_transient_delete_failures_fall_back(self, build_repository):
        def handler(call):
            if call.url == CONTEXTINFO:
                return digest_response()
            if call.method == "DELETE":
                return make_response(429)
            return make_response(200)

        repository, session = build_repository(handler=handler, retry_policy=RetryPolicy(max_attempts=2, base_delay=0))

        repository.delete(_delete_context())

        methods = [c.method for c in session.calls if c.url != CONTEXTINFO]
        assert methods == ["DELETE", "DELETE", "POST"]

    def test_missing_file_name_makes_no_calls(self, build_repository):
        repository, session = build_repository(script=[])

        with pytest.raises(InsufficientContextError):
            repository.delete(_delete_context(file_name=None))

        assert session.calls == []


class TestOutcome:
    def test_success_envelope(self, build_repository, full_context):
        repository, _ = build_repository(
            handler=lambda call: make_response(200, json_body={"AttachmentFiles": attachment_files("a.pdf")})
        )

        outcome = repository.outcome(Operation.LIST_ATTACHMENTS, full_context)

        assert outcome.success
        assert [r.file_name for r in outcome.value] == ["a.pdf"]
        assert outcome.error_kind is None

    def test_broken_body_is_retried_inside_envelope(self, build_repository, full_context):
        script = [
            requests.exceptions.ChunkedEncodingError("connection broken mid-body"),
            make_response(200, json_body={"AttachmentFiles": attachment_files("a.pdf")}),
        ]
        repository, session = build_repository(script=script)

        outcome = repository.outcome(Operation.LIST_ATTACHMENTS, full_context)

        assert outcome.success
        assert [r.file_name for r in outcome.value] == ["a.pdf"]
        assert session.calls[0].url == session.calls[1].url

    def test_failure_envelope_carries_kind_and_message(self, build_repository):
        repository, _ = build_repository(script=[])

        outcome = repository.outcome(Operation.DELETE_ATTACHMENT, OperationContext(base_url=BASE, item_id=None))

        assert not outcome.success
        assert outcome.value is None
        assert outcome.error_kind == "insufficient_context"
        assert "item_id" in outcome.error_message

    def test_exhausted_candidate_error_type(self, build_repository, full_context):
        repository, _ = build_repository(
            handler=lambda call: make_response(503), retry_policy=RetryPolicy(max_attempts=1, base_delay=0)
        )

        with pytest.raises(AllCandidatesFailed) as excinfo:
            repository.list(full_context)

        assert isinstance(excinfo.value.last_error, TransientFailureExhausted)
