"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """Actor's resolved role/state/division does not match the transition"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class PermissionDeniedError(AuthorizationError):
    """Specific permission denied"""
    error_code = "PERMISSION_DENIED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class TimelineTooSoonError(ValidationError):
    """Requested timeline is inside the minimum lead time"""
    error_code = "TIMELINE_TOO_SOON"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class RequestNotFoundError(NotFoundError):
    """Information request not found"""
    error_code = "REQUEST_NOT_FOUND"


class SubmissionNotFoundError(NotFoundError):
    """Child submission not found"""
    error_code = "SUBMISSION_NOT_FOUND"


class DivisionAssignmentNotFoundError(NotFoundError):
    """Division has not been fanned out on this request"""
    error_code = "DIVISION_ASSIGNMENT_NOT_FOUND"


class PrincipalNotFoundError(NotFoundError):
    """Principal unknown to the role directory"""
    error_code = "PRINCIPAL_NOT_FOUND"


# Conflict Errors
class StateConflictError(DomainError):
    """Transition conflicts with the current state; nothing was applied"""
    error_code = "STATE_CONFLICT"
    http_status = 409


class InvalidStateError(StateConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class DeadlineIncreasedError(StateConflictError):
    """Revised deadline is later than the binding one"""
    error_code = "DEADLINE_INCREASED"


class DeclineNotAllowedError(StateConflictError):
    """Decline attempted on a first pass"""
    error_code = "DECLINE_NOT_ALLOWED"


class NoDivisionHeadsError(StateConflictError):
    """Fan-out resolved zero divisions"""
    error_code = "NO_DIVISION_HEADS"


class ConcurrencyError(StateConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


# Infrastructure Errors
class RepositoryUnavailableError(DomainError):
    """Storage layer cannot be reached"""
    error_code = "REPOSITORY_UNAVAILABLE"
    http_status = 503
