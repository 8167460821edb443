"""Routing module for classified submissions.

This module provides:
- Flag to target routing (Green: CRM sync and provisioning, Yellow: CRM only)
- HTTP dispatch targets with retryable/permanent status mapping
"""

from src.routing.dispatch import (
    DispatchResult,
    DispatchTarget,
    HttpDispatchTarget,
    TargetName,
    classify_status,
    dispatch_payload,
)
from src.routing.routes import ROUTES, targets_for

__all__ = [
    "DispatchResult",
    "DispatchTarget",
    "HttpDispatchTarget",
    "ROUTES",
    "TargetName",
    "classify_status",
    "dispatch_payload",
    "targets_for",
]
