"""Custom exceptions for the Chat Relay API.

This module defines a hierarchy of custom exceptions with error codes and
user-friendly messages for consistent error handling across the application.
"""

from typing import Any, Dict, Optional

from fastapi import status


class APIException(Exception):
  """Base exception for all API errors.

  All custom exceptions should inherit from this class to ensure
  consistent error handling and response formatting.

  Attributes:
    message: User-friendly error message
    error_code: Machine-readable error code
    status_code: HTTP status code
    details: Additional error details (optional)
  """

  def __init__(
    self,
    message: str,
    error_code: str,
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    details: Optional[Dict[str, Any]] = None,
  ):
    """Initialize base API exception with common error fields."""
    self.message = message
    self.error_code = error_code
    self.status_code = status_code
    self.details = details or {}
    super().__init__(self.message)

  def to_dict(self) -> Dict[str, Any]:
    """Convert exception to dictionary for JSON response."""
    response = {
      "error": {
        "message": self.message,
        "code": self.error_code,
      }
    }
    if self.details:
      response["error"]["details"] = self.details
    return response


# ============================================================================
# Client Errors (4xx) - User-fixable errors
# ============================================================================

class ValidationError(APIException):
  """Request validation failed (422)."""

  def __init__(self, message: str = "Validation error", details: Optional[Dict[str, Any]] = None):
    """Build validation error with optional detail payload."""
    super().__init__(
      message=message,
      error_code="VALIDATION_ERROR",
      status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
      details=details,
    )


class InvalidRequestError(APIException):
  """Request is invalid or malformed (400).

  Used for business logic validation failures that aren't caught
  by Pydantic validation.
  """

  def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
    """Build invalid-request error with optional detail payload."""
    super().__init__(
      message=message,
      error_code="INVALID_REQUEST",
      status_code=status.HTTP_400_BAD_REQUEST,
      details=details,
    )


class ConflictError(APIException):
  """Request conflicts with current resource state (409)."""

  def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
    """Build conflict error when operation cannot proceed."""
    super().__init__(
      message=message,
      error_code="RESOURCE_CONFLICT",
      status_code=status.HTTP_409_CONFLICT,
      details=details,
    )


# ============================================================================
# Server Errors (5xx) - System errors
# ============================================================================

class InternalServerError(APIException):
  """Internal server error (500).

  Used for unexpected errors that aren't caught by more specific handlers.
  """

  def __init__(
    self,
    message: str = "Internal server error",
    details: Optional[Dict[str, Any]] = None,
    error_code: str = "INTERNAL_SERVER_ERROR",
  ):
    """Build internal server error with optional details."""
    super().__init__(
      message=message,
      error_code=error_code,
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      details=details,
    )


class ExternalServiceError(APIException):
  """External service call failed (502).

  Used when the automated chat site misbehaves or a browser step fails.
  """

  def __init__(
    self,
    service_name: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    error_code: str = "EXTERNAL_SERVICE_ERROR",
  ):
    """Build external service error including service metadata."""
    super().__init__(
      message=f"{service_name} error: {message}",
      error_code=error_code,
      status_code=status.HTTP_502_BAD_GATEWAY,
      details={**(details or {}), "service": service_name},
    )


class ServiceUnavailableError(APIException):
  """Service temporarily unavailable (503)."""

  def __init__(
    self,
    message: str = "Service temporarily unavailable",
    details: Optional[Dict[str, Any]] = None,
    error_code: str = "SERVICE_UNAVAILABLE",
  ):
    """Build service-unavailable error with optional message."""
    super().__init__(
      message=message,
      error_code=error_code,
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      details=details,
    )


class TimeoutError(APIException):
  """Request timeout (504).

  Used when an operation takes too long to complete.
  """

  def __init__(self, operation: str, timeout_seconds: float, error_code: str = "TIMEOUT_ERROR"):
    """Build timeout error with operation context."""
    super().__init__(
      message=f"{operation} timed out after {timeout_seconds} seconds",
      error_code=error_code,
      status_code=status.HTTP_504_GATEWAY_TIMEOUT,
      details={"operation": operation, "timeout": timeout_seconds},
    )


# ============================================================================
# Domain-Specific Errors
# ============================================================================

class AutomationError(ExternalServiceError):
  """A step of the browser automation session failed.

  Used when a selector fallback chain is exhausted or Playwright raises mid-session.
  """

  def __init__(self, step: str, message: str, screenshot: Optional[str] = None):
    """Build automation error naming the failed step."""
    details: Dict[str, Any] = {"step": step}
    if screenshot:
      details["screenshot"] = screenshot
    super().__init__(
      service_name="ChatGPT automation",
      message=message,
      details=details,
      error_code="AUTOMATION_ERROR",
    )
    self.step = step


class ChatInputNotFoundError(AutomationError):
  """No strategy in the input fallback chain located the chat input."""

  def __init__(self, screenshot: Optional[str] = None):
    """Build input-not-found error with optional failure screenshot."""
    super().__init__(
      step="find_chat_input",
      message="Could not locate the chat input on the page",
      screenshot=screenshot,
    )


class LoginFailedError(AutomationError):
  """Credential login did not reach the chat interface."""

  def __init__(self, message: str, screenshot: Optional[str] = None):
    """Build login failure error."""
    super().__init__(step="authenticate", message=message, screenshot=screenshot)


class ChallengeDetectedError(ServiceUnavailableError):
  """The site presented a human-verification or browser-check wall.

  The session does not attempt to get past these automatically.
  """

  def __init__(self, kind: str, message: Optional[str] = None):
    """Build challenge error describing which wall was shown."""
    super().__init__(
      message=message or f"ChatGPT presented a {kind} page that was not cleared",
      details={
        "challenge": kind,
        "solution": "Run with headless=false and complete the check in the browser window",
      },
      error_code="CHALLENGE_DETECTED",
    )
    self.kind = kind


class ResponseTimeoutError(TimeoutError):
  """The reply did not appear or did not finish streaming in time."""

  def __init__(self, phase: str, timeout_seconds: float):
    """Build timeout error for a response wait phase."""
    super().__init__(
      operation=f"Waiting for response ({phase})",
      timeout_seconds=timeout_seconds,
      error_code="RESPONSE_TIMEOUT",
    )
    self.phase = phase


class SessionBusyError(ConflictError):
  """Another automation session is already running."""

  def __init__(self):
    """Build busy error."""
    super().__init__(
      "Another browser session is already running",
      details={"solution": "Retry once the current request has finished"},
    )


class PersistenceError(InternalServerError):
  """Writing a transcript file failed."""

  def __init__(self, path: str, reason: str):
    """Build persistence error with target path."""
    super().__init__(
      message=f"Failed to write transcript: {reason}",
      details={"path": path},
      error_code="PERSISTENCE_ERROR",
    )


# ============================================================================
# Error Code Reference
# ============================================================================

ERROR_CODE_REFERENCE = {
  # Client Errors (4xx)
  "VALIDATION_ERROR": "Request validation failed - check your input data",
  "INVALID_REQUEST": "The request is invalid or malformed",
  "RESOURCE_CONFLICT": "Another browser session is already running",

  # Server Errors (5xx)
  "INTERNAL_SERVER_ERROR": "An unexpected error occurred",
  "PERSISTENCE_ERROR": "A transcript file could not be written",
  "EXTERNAL_SERVICE_ERROR": "An external service call failed",
  "AUTOMATION_ERROR": "A browser automation step failed",
  "SERVICE_UNAVAILABLE": "The service is temporarily unavailable",
  "CHALLENGE_DETECTED": "The chat site asked for human verification",
  "TIMEOUT_ERROR": "The operation timed out",
  "RESPONSE_TIMEOUT": "The chat reply did not finish in time",
}
