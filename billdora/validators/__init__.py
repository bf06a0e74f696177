"""Validation layer for billing rule compliance."""

from billdora.validators.billing_validators import (
    EMPTY_TASK_SELECTION,
    EMPTY_TM_SELECTION,
    BillingRuleValidators,
)
from billdora.validators.validation_report import (
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)

__all__ = [
    "BillingRuleValidators",
    "EMPTY_TASK_SELECTION",
    "EMPTY_TM_SELECTION",
    "ValidationIssue",
    "ValidationReport",
    "ValidationSeverity",
]
