"""Intake module: payload parsing and business validation."""

from src.intake.forms import parse_received_at, parse_submission
from src.intake.validation import validate_field, validate_fields, validation_signal

__all__ = [
    "parse_received_at",
    "parse_submission",
    "validate_field",
    "validate_fields",
    "validation_signal",
]
