"""Classification engine: Green / Yellow / Red flag assignment."""

from src.classification.conditions import evaluate_condition, rule_matches
from src.classification.engine import (
    ClassificationEngine,
    ClassificationResult,
    routing_action,
)

__all__ = [
    "ClassificationEngine",
    "ClassificationResult",
    "evaluate_condition",
    "routing_action",
    "rule_matches",
]
