"""Tests for dispatch targets and flag routing."""

import json

import httpx
import pytest

from src.models.enrichment import CompanyData, EnrichmentResult
from src.models.enums import ClassificationFlag, DispatchStatus, RoutingAction
from src.models.outcomes import ScoreSignal
from src.models.submission import Submission
from src.pipeline.models import SubmissionRecord
from src.routing import (
    HttpDispatchTarget,
    classify_status,
    dispatch_payload,
    targets_for,
)


@pytest.fixture
def record() -> SubmissionRecord:
    """Return a Green record with enrichment signals."""
    submission = Submission(
        submission_id="SUB-20240115143052-a1b2c3d4",
        form_id="contact-sales",
        fields={"email": "jane@acme.io"},
    )
    submission.context.record(
        "enrichment.company",
        EnrichmentResult(
            status="found",
            provider="primary",
            company=CompanyData(name="Acme", raw={"secret": "x"}),
        ),
    )
    submission.context.record("enrichment.spamScore", ScoreSignal(value=0.1))
    return SubmissionRecord(
        submission=submission,
        flag=ClassificationFlag.GREEN,
        action=RoutingAction.ELOQUA_AND_BUILDER,
    )


def target_with(handler) -> HttpDispatchTarget:
    return HttpDispatchTarget(
        "crm_sync",
        "https://crm.test/leads",
        api_key="dispatch-key",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


class TestRoutes:
    """Tests for flag routing."""

    def test_green_both_targets(self) -> None:
        assert targets_for(ClassificationFlag.GREEN) == ("crm_sync", "provisioning")

    def test_yellow_crm_only(self) -> None:
        assert targets_for(ClassificationFlag.YELLOW) == ("crm_sync",)

    def test_red_nothing(self) -> None:
        assert targets_for(ClassificationFlag.RED) == ()


class TestClassifyStatus:
    """Tests for HTTP status mapping."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (200, DispatchStatus.SUCCESS),
            (201, DispatchStatus.SUCCESS),
            (408, DispatchStatus.RETRYABLE_ERROR),
            (429, DispatchStatus.RETRYABLE_ERROR),
            (500, DispatchStatus.RETRYABLE_ERROR),
            (503, DispatchStatus.RETRYABLE_ERROR),
            (400, DispatchStatus.PERMANENT_ERROR),
            (404, DispatchStatus.PERMANENT_ERROR),
            (422, DispatchStatus.PERMANENT_ERROR),
        ],
    )
    def test_mapping(self, code: int, expected: DispatchStatus) -> None:
        assert classify_status(code) == expected


class TestHttpDispatchTarget:
    """Tests for the HTTP dispatch target."""

    def test_success_request(self, record: SubmissionRecord) -> None:
        """The payload and idempotency header are sent."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(202)

        result = target_with(handler).submit(record)

        assert result.is_success
        assert result.status_code == 202
        assert seen["headers"]["Idempotency-Key"] == (
            "SUB-20240115143052-a1b2c3d4:crm_sync"
        )
        assert seen["headers"]["Authorization"] == "Bearer dispatch-key"
        assert seen["body"]["flag"] == "green"
        assert seen["body"]["action"] == "eloqua+builder"
        assert seen["body"]["company"]["name"] == "Acme"
        assert "raw" not in seen["body"]["company"]
        assert seen["body"]["spam_score"] == 0.1

    def test_rate_limited_retryable(self, record: SubmissionRecord) -> None:
        result = target_with(lambda request: httpx.Response(429)).submit(record)
        assert result.status == DispatchStatus.RETRYABLE_ERROR
        assert "HTTP 429" in result.message

    def test_rejected_permanent(self, record: SubmissionRecord) -> None:
        result = target_with(
            lambda request: httpx.Response(422, text="bad email")
        ).submit(record)
        assert result.status == DispatchStatus.PERMANENT_ERROR
        assert "bad email" in result.message

    def test_transport_error_retryable(self, record: SubmissionRecord) -> None:
        """Network failures never raise out of submit."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = target_with(handler).submit(record)
        assert result.status == DispatchStatus.RETRYABLE_ERROR
        assert result.status_code is None

    def test_payload_without_enrichment(self) -> None:
        record = SubmissionRecord(submission=Submission(form_id="f", fields={}))
        payload = dispatch_payload(record)
        assert payload["company"] is None
        assert payload["spam_score"] is None
        assert payload["flag"] is None
