"""Validation report for collecting billing rule violations and warnings."""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional


class ValidationSeverity(IntEnum):
    """Severity levels for validation issues."""

    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class ValidationIssue:
    """Represents a single validation issue.

    Attributes:
        severity: The severity level of the issue
        code: Stable identifier of the rule that produced the issue
        message: Human-readable description shown to the user
        subject_id: Id of the task or record the issue is about, if any
    """

    severity: ValidationSeverity
    code: str
    message: str
    subject_id: Optional[str] = None

    def __str__(self) -> str:
        subject = f" ({self.subject_id})" if self.subject_id else ""
        return f"[{self.severity.name}] {self.code}: {self.message}{subject}"


class ValidationReport:
    """Collects validation issues in the order they are raised.

    Errors gate invoice creation; warnings (such as not-to-exceed overages)
    are shown to the user but never block.

    Example:
        >>> report = ValidationReport()
        >>> report.add_warning("nte_exceeded", '"Design" exceeds budget by $200.00')
        >>> report.is_valid()
        True
        >>> report.add_error("empty_selection", "Please select at least one task")
        >>> report.first_error_message()
        'Please select at least one task'
    """

    def __init__(self) -> None:
        self.issues: List[ValidationIssue] = []

    def add_error(
        self, code: str, message: str, subject_id: Optional[str] = None
    ) -> None:
        self.issues.append(
            ValidationIssue(ValidationSeverity.ERROR, code, message, subject_id)
        )

    def add_warning(
        self, code: str, message: str, subject_id: Optional[str] = None
    ) -> None:
        self.issues.append(
            ValidationIssue(ValidationSeverity.WARNING, code, message, subject_id)
        )

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]

    def is_valid(self) -> bool:
        """Check if validation passed (no errors).

        Returns:
            True if no errors are present, False otherwise
        """
        return not self.get_errors()

    def first_error_message(self) -> Optional[str]:
        """Message of the first error raised, or None when valid."""
        errors = self.get_errors()
        return errors[0].message if errors else None

    def warning_messages(self) -> List[str]:
        return [issue.message for issue in self.get_warnings()]

    def summary(self) -> str:
        """Get a summary of the validation report.

        Returns:
            Summary string with counts of errors and warnings
        """
        parts = []
        error_count = len(self.get_errors())
        warning_count = len(self.get_warnings())
        if error_count:
            parts.append(f"{error_count} error(s)")
        if warning_count:
            parts.append(f"{warning_count} warning(s)")
        return ", ".join(parts) if parts else "No issues found"
