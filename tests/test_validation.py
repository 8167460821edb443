"""Tests for payload parsing and business validation."""

from datetime import UTC, datetime

import pytest

from src.intake.forms import parse_received_at, parse_submission
from src.intake.validation import validate_field, validate_fields
from src.models.enums import CheckStatus, FieldType
from src.models.forms import FieldSpec, FormDefinition
from src.models.submission import Submission


class TestParseSubmission:
    """Tests for payload parsing."""

    def test_valid_payload(self, contact_payload: dict) -> None:
        submission = parse_submission(contact_payload)

        assert submission.form_id == "contact-sales"
        assert submission.metadata.country == "US"
        assert submission.metadata.captcha_token == "token-abc"
        assert submission.received_at == datetime(2024, 1, 15, 14, 30, tzinfo=UTC)
        assert not submission.context.signals

    def test_top_level_metadata(self) -> None:
        """Metadata keys are accepted at the top level too."""
        submission = parse_submission(
            {"form_id": "f", "fields": {}, "client_ip": "198.51.100.1"}
        )
        assert submission.metadata.client_ip == "198.51.100.1"

    def test_idempotency_key(self) -> None:
        submission = parse_submission(
            {"form_id": "f", "fields": {"a": 1}, "idempotency_key": "tok"}
        )
        assert submission.dedup_key == "f:tok"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"fields": {}},
            {"form_id": "f"},
            {"form_id": "f", "fields": []},
            {"form_id": "f", "fields": {}, "metadata": "x"},
        ],
    )
    def test_malformed_payload(self, payload) -> None:
        with pytest.raises(ValueError):
            parse_submission(payload)

    def test_parse_received_at_formats(self) -> None:
        expected = datetime(2024, 1, 15, tzinfo=UTC)
        assert parse_received_at("2024-01-15") == expected
        assert parse_received_at("2024-01-15T00:00:00Z") == expected
        with pytest.raises(ValueError):
            parse_received_at("last tuesday")


class TestValidateField:
    """Tests for single-field rules."""

    def test_required_missing(self) -> None:
        spec = FieldSpec(id="company", required=True)
        assert validate_field(spec, "  ", "US").reason == "required"

    def test_optional_empty_passes(self) -> None:
        spec = FieldSpec(id="website", type=FieldType.URL)
        assert validate_field(spec, None, "US").status == CheckStatus.PASSED

    @pytest.mark.parametrize(
        ("field_type", "value", "reason"),
        [
            (FieldType.EMAIL, "not-an-email", "format"),
            (FieldType.PHONE, "12", "format"),
            (FieldType.URL, "localhost", "format"),
            (FieldType.NUMBER, "many", "format"),
            (FieldType.NUMBER, True, "format"),
            (FieldType.CHECKBOX, "maybe", "format"),
        ],
    )
    def test_format_errors(self, field_type: FieldType, value, reason: str) -> None:
        spec = FieldSpec(id="f", type=field_type)
        assert validate_field(spec, value, "US").reason == reason

    def test_valid_formats(self) -> None:
        assert validate_field(
            FieldSpec(id="e", type=FieldType.EMAIL), "jane@acme.io", "US"
        ).status == CheckStatus.PASSED
        assert validate_field(
            FieldSpec(id="w", type=FieldType.URL), "acme.io/about", "US"
        ).status == CheckStatus.PASSED
        assert validate_field(
            FieldSpec(id="p", type=FieldType.PHONE), "(650) 253-0000", "US"
        ).status == CheckStatus.PASSED

    def test_number_bounds(self) -> None:
        spec = FieldSpec(id="seats", type=FieldType.NUMBER, min_value=1, max_value=10)
        assert validate_field(spec, "0", "US").reason == "min_value"
        assert validate_field(spec, 11, "US").reason == "max_value"
        assert validate_field(spec, "5", "US").status == CheckStatus.PASSED

    def test_lengths_and_pattern(self) -> None:
        spec = FieldSpec(id="code", min_length=3, max_length=5, pattern=r"[A-Z]+")
        assert validate_field(spec, "AB", "US").reason == "min_length"
        assert validate_field(spec, "ABCDEF", "US").reason == "max_length"
        assert validate_field(spec, "abc", "US").reason == "pattern"
        assert validate_field(spec, "ABC", "US").status == CheckStatus.PASSED

    def test_select_options(self) -> None:
        spec = FieldSpec(id="size", type=FieldType.SELECT, options=("1-10", "11-50"))
        assert validate_field(spec, "500", "US").reason == "invalid_option"
        assert validate_field(spec, "11-50", "US").status == CheckStatus.PASSED

    def test_required_checkbox_must_be_ticked(self) -> None:
        """Consent that is present but false is still missing."""
        spec = FieldSpec(id="consent", type=FieldType.CHECKBOX, required=True)
        assert validate_field(spec, False, "US").reason == "required"
        assert validate_field(spec, "on", "US").status == CheckStatus.PASSED


class TestValidateFields:
    """Tests for whole-form validation."""

    def test_reports_every_failure(self, contact_form: FormDefinition) -> None:
        """All failing fields are reported at once."""
        submission = Submission(
            form_id="contact-sales",
            fields={
                "first_name": "Jane",
                "last_name": "Doe",
                "email": "jane@",
                "team_size": "11-50",
                "consent": False,
            },
        )
        result = validate_fields(submission, contact_form)

        assert result.is_blocked
        failures = {f.signal: f.reason for f in result.failures}
        assert failures == {
            "validation.email": "format",
            "validation.company": "required",
            "validation.consent": "required",
        }
        assert len(result.outcomes) == len(contact_form.fields)

    def test_undeclared_fields_ignored(self, contact_form: FormDefinition) -> None:
        """Extra submitted fields do not fail validation and are kept."""
        submission = Submission(
            form_id="contact-sales",
            fields={
                "first_name": "Jane",
                "last_name": "Doe",
                "email": "jane@acme.io",
                "company": "Acme",
                "team_size": "1-10",
                "consent": True,
                "utm_source": "newsletter",
            },
        )
        result = validate_fields(submission, contact_form)

        assert not result.is_blocked
        assert "validation.utm_source" not in submission.context
        assert submission.fields["utm_source"] == "newsletter"
