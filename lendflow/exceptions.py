"""
Custom exceptions for LendFlow.

Malformed document data never raises: it degrades to zeros and notes.
These exceptions cover callers that break the input contract itself.
"""
from typing import Any, Dict, Optional


class LendFlowError(Exception):
    """
    Base exception for all LendFlow errors.

    Attributes:
        error_code: Unique error code (e.g., LF-001)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "LF-000"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a serializable dictionary."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Input Contract Errors (LF-1XX)
class InvalidInputError(LendFlowError):
    """Extraction input does not match the expected shape."""
    error_code = "LF-100"

    def __init__(self, message: str = "Invalid analysis input", **kwargs):
        super().__init__(message, **kwargs)


class InvalidLoanTermsError(LendFlowError):
    """Proposed loan parameters are out of range."""
    error_code = "LF-101"

    def __init__(self, message: str = "Invalid proposed loan terms", **kwargs):
        super().__init__(message, **kwargs)


# Analysis Errors (LF-2XX)
class AnalysisError(LendFlowError):
    """Unexpected failure inside an analysis pass."""
    error_code = "LF-200"

    def __init__(self, pass_name: str, message: str = "Analysis pass failed", **kwargs):
        details = kwargs.pop("details", None) or {}
        details["pass"] = pass_name
        super().__init__(message, details=details, **kwargs)
