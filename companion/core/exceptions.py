"""
Custom Exceptions - Application-specific error classes.

Every error the engine can surface derives from CompanionException:
- Each exception has an HTTP status code and a stable error code
- The API layer turns them into JSON bodies via to_dict()
- Internal details are never put in the user-facing message
"""
from typing import Optional


class CompanionException(Exception):
    """
    Base exception for all companion errors.

    Attributes:
        message: User-facing message
        details: Optional machine-oriented detail string
        is_new_session: Set by the conversation engine so callers can keep
            their UI state consistent even when a turn fails
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.is_new_session: Optional[bool] = None

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        body = {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
        if self.is_new_session is not None:
            body["is_new_session"] = self.is_new_session
        return body


class Unauthenticated(CompanionException):
    """Raised when an operation is attempted without a caller identity."""
    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NotFoundOrUnauthorized(CompanionException):
    """Raised when a session does not exist or belongs to someone else."""
    status_code = 404
    error_code = "not_found_or_unauthorized"

    def __init__(self, resource: str = "Chat", resource_id: Optional[str] = None):
        super().__init__(
            message=f"{resource} not found or you don't have permission to access it.",
            details=f"id={resource_id}" if resource_id else None,
        )
        self.resource = resource


class NotFoundError(CompanionException):
    """Raised when a referenced record or memory fact does not exist."""
    status_code = 404
    error_code = "not_found"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message, details)


class ValidationError(CompanionException):
    """Raised when input validation fails."""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class InsufficientCredits(CompanionException):
    """Raised by admission control when a turn costs more than the balance."""
    status_code = 402
    error_code = "insufficient_credits"

    def __init__(self, required: int, available: int):
        shortfall = required - available
        super().__init__(
            message=(
                f"Not enough credits: this message needs {required} credits "
                f"but you have {available}. Add at least {shortfall} more "
                f"credits to continue."
            ),
            details=f"required={required}, available={available}",
        )
        self.required = required
        self.available = available
        self.shortfall = shortfall


class RateLimitExceeded(CompanionException):
    """Raised when the AI backend reports a quota or rate limit."""
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60):
        super().__init__(
            message=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            details=f"retry_after={retry_after}",
        )
        self.retry_after = retry_after


class GenerationError(CompanionException):
    """Raised when the AI backend returns nothing usable."""
    status_code = 502
    error_code = "generation_error"

    def __init__(self, message: str = "The AI did not return a response"):
        super().__init__(message)


class LLMConfigurationError(CompanionException):
    """Raised when the AI backend cannot be configured (missing API key)."""
    status_code = 500
    error_code = "llm_configuration_error"

    def __init__(self, message: str = "LLM backend is not configured"):
        super().__init__(message)


class InternalError(CompanionException):
    """Catch-all surfaced when an unexpected exception escapes a turn."""
    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str = "An error occurred while processing your request."):
        super().__init__(message)
