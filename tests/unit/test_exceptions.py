"""
Unit tests for custom exceptions.

Tests exception hierarchy and error formatting.
"""
import pytest

from lendflow.exceptions import (
    AnalysisError,
    InvalidInputError,
    InvalidLoanTermsError,
    LendFlowError,
)


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    def test_base_exception(self):
        """Test base LendFlowError."""
        exc = LendFlowError("Test error")

        assert exc.error_code == "LF-000"
        assert exc.message == "Test error"
        assert exc.details == {}

    def test_invalid_input_error(self):
        """Test InvalidInputError inherits correctly."""
        exc = InvalidInputError("Extractions must be a list")

        assert isinstance(exc, LendFlowError)
        assert exc.error_code == "LF-100"

    def test_invalid_loan_terms_error(self):
        """Test InvalidLoanTermsError default message."""
        exc = InvalidLoanTermsError()

        assert isinstance(exc, LendFlowError)
        assert exc.error_code == "LF-101"
        assert exc.message == "Invalid proposed loan terms"

    def test_analysis_error_records_pass(self):
        """Test AnalysisError carries the failing pass name."""
        exc = AnalysisError("income", "boom", details={"records": 3})

        assert exc.error_code == "LF-200"
        assert exc.details == {"records": 3, "pass": "income"}

    def test_error_code_override(self):
        """Test error code can be overridden per instance."""
        exc = LendFlowError("Custom", error_code="LF-999")

        assert exc.error_code == "LF-999"

    def test_can_be_raised_and_caught_as_base(self):
        """Test subclasses are caught by the base class."""
        with pytest.raises(LendFlowError):
            raise InvalidInputError("bad")


class TestExceptionSerialization:
    """Tests for to_dict formatting."""

    def test_to_dict(self):
        """Test exception converts to dictionary."""
        exc = InvalidInputError(
            "Extraction record must be a mapping",
            details={"position": 2, "type": "str"},
        )

        assert exc.to_dict() == {
            "error": True,
            "error_code": "LF-100",
            "message": "Extraction record must be a mapping",
            "details": {"position": 2, "type": "str"},
        }

    def test_str_is_message(self):
        """Test str() returns the message."""
        assert str(AnalysisError("dti", "division failed")) == "division failed"
