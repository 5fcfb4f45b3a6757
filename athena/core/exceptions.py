"""
Custom exceptions for the Athena platform.
"""

from typing import Optional, Any, Dict


class AthenaException(Exception):
    """Base exception for all Athena-related errors."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class AuthenticationError(AthenaException):
    """Raised when a credential is missing or invalid."""
    pass


class AuthorizationError(AthenaException):
    """Raised when access is denied by a role check or the policy decision point."""
    pass


class ValidationError(AthenaException):
    """Raised when data validation fails."""
    pass


class ResourceNotFoundError(AthenaException):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(AthenaException):
    """Raised when an operation conflicts with the current resource state."""
    pass


class DuplicateEnrollmentError(ConflictError):
    """Raised when a student is already enrolled in a course."""
    pass


class StaleRevisionError(ConflictError):
    """Raised by a document store when a conditional update sees a newer revision."""
    pass


class BusinessRuleError(AthenaException):
    """Raised when a domain rule forbids an otherwise permitted operation."""
    pass


class PastDueError(BusinessRuleError):
    """Raised when submitting an assignment after its due date."""
    pass


class UpstreamError(AthenaException):
    """Raised when an external service fails."""
    pass


class PolicyCheckError(UpstreamError):
    """Raised when the policy decision point cannot be reached or answers garbage."""
    pass


class ConfigurationError(AthenaException):
    """Raised when configuration is invalid."""
    pass
