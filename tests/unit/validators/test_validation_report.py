"""Tests for ValidationReport."""

from billdora.validators.validation_report import (
    ValidationIssue,
    ValidationReport,
    ValidationSeverity,
)


class TestValidationIssue:
    """Test ValidationIssue."""

    def test_str_with_subject(self):
        """Test string rendering including the subject id."""
        issue = ValidationIssue(
            ValidationSeverity.ERROR, "mode_locked", "Locked", subject_id="t-1"
        )
        assert str(issue) == "[ERROR] mode_locked: Locked (t-1)"

    def test_severity_ordering(self):
        """Test that errors rank above warnings."""
        assert ValidationSeverity.ERROR > ValidationSeverity.WARNING


class TestValidationReport:
    """Test ValidationReport."""

    def test_empty_report_is_valid(self):
        """Test a fresh report."""
        report = ValidationReport()
        assert report.is_valid()
        assert report.first_error_message() is None
        assert report.summary() == "No issues found"

    def test_warnings_do_not_invalidate(self):
        """Test that warnings never block."""
        report = ValidationReport()
        report.add_warning("nte_exceeded", "Over budget")
        assert report.is_valid()
        assert report.warning_messages() == ["Over budget"]

    def test_first_error_wins(self):
        """Test that the first error raised is reported."""
        report = ValidationReport()
        report.add_warning("nte_exceeded", "Over budget")
        report.add_error("mode_locked", "First")
        report.add_error("empty_selection", "Second")
        assert not report.is_valid()
        assert report.first_error_message() == "First"
        assert len(report.get_errors()) == 2
        assert len(report.get_warnings()) == 1

    def test_summary_counts(self):
        """Test summary text."""
        report = ValidationReport()
        report.add_error("a", "x")
        report.add_warning("b", "y")
        report.add_warning("c", "z")
        assert report.summary() == "1 error(s), 2 warning(s)"
