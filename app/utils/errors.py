"""
Reflecta API - Custom Exception Classes.

Exception hierarchy for application error handling.
"""

from typing import Optional

from app.models.coaching import FailureReason


class ReflectaException(Exception):
    """
    Base exception class for the Reflecta coaching service.

    All custom exceptions should inherit from this class.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code for the error.
        detail: Additional error details.
    """

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        detail: Optional[str] = None
    ):
        """
        Initialize ReflectaException.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code (default 500).
            detail: Additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


class AuthenticationError(ReflectaException):
    """
    Exception raised for authentication failures.

    Used when:
    - Missing bearer token
    - Bearer token does not match the configured secret
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=401,
            detail=detail
        )


class NotFoundError(ReflectaException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=404,
            detail=detail
        )


class ValidationError(ReflectaException):
    """
    Exception raised for input validation failures.

    Used when:
    - Missing required fields
    - Debug action without a userId
    """

    def __init__(
        self,
        message: str = "Validation error",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=400,
            detail=detail
        )


class ForbiddenError(ReflectaException):
    """Exception raised when an endpoint is not available in this environment."""

    def __init__(
        self,
        message: str = "Access denied",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=403,
            detail=detail
        )


# =========================================================================
# Coaching pipeline failures
# =========================================================================

class CoachingPipelineError(ReflectaException):
    """
    Failure inside a single Processor run.

    Never leaves the Processor: it is translated into a failed
    coaching message record plus a retry-mode reschedule.

    Attributes:
        reason: Failure taxonomy tag persisted on the record.
    """

    reason: FailureReason = FailureReason.INTERNAL_ERROR

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message=message, status_code=500, detail=detail)


class ContextFetchError(CoachingPipelineError):
    """The user's profile could not be loaded while building context."""

    reason = FailureReason.CONTEXT_FETCH_FATAL


class GenerationError(CoachingPipelineError):
    """The text-generation service was unavailable, timed out or returned nothing."""

    reason = FailureReason.GENERATION_ERROR


class DraftParseError(CoachingPipelineError):
    """No valid draft block could be recovered from Stage A output."""

    reason = FailureReason.DRAFT_PARSE_ERROR


class SimulationParseError(CoachingPipelineError):
    """No valid simulation block could be recovered from Stage B output."""

    reason = FailureReason.SIMULATION_PARSE_ERROR
