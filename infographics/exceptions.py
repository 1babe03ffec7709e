"""Custom exception hierarchy for the infographics backend."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses and queue failure records."""

    # Entity errors
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"
    QUEUE_ITEM_NOT_FOUND = "QUEUE_ITEM_NOT_FOUND"

    # Generation errors (LLM provider)
    PROVIDER_ERROR = "PROVIDER_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"

    # Database errors
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Generation is not configured on this deployment
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class InfographicsException(Exception):
    """
    Base exception for all infographics backend errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class ProjectNotFoundError(InfographicsException):
    """Project not found in database."""

    def __init__(self, project_id: str):
        super().__init__(
            f"Project not found: {project_id}",
            ErrorCode.PROJECT_NOT_FOUND,
            status_code=404,
            details={"project_id": project_id}
        )


class PageNotFoundError(InfographicsException):
    """Page not found in database."""

    def __init__(self, page_id: str):
        super().__init__(
            f"Page not found: {page_id}",
            ErrorCode.PAGE_NOT_FOUND,
            status_code=404,
            details={"page_id": page_id}
        )


class QueueItemNotFoundError(InfographicsException):
    """Generation queue item not found in database."""

    def __init__(self, item_id: str):
        super().__init__(
            f"Queue item not found: {item_id}",
            ErrorCode.QUEUE_ITEM_NOT_FOUND,
            status_code=404,
            details={"queue_item_id": item_id}
        )


class GenerationError(InfographicsException):
    """
    An LLM call could not produce the expected structured output.

    The error_code tells the failure kind apart (PROVIDER_ERROR or
    MALFORMED_RESPONSE); callers catch the subclass they care about.
    """

    def __init__(self, message: str, error_code: ErrorCode, model: str = ""):
        details = {"model": model} if model else {}
        super().__init__(
            message,
            error_code,
            status_code=502,
            details=details
        )


class ProviderError(GenerationError):
    """Transport, HTTP or provider-side failure calling the LLM endpoint."""

    def __init__(self, message: str, model: str = ""):
        super().__init__(message, ErrorCode.PROVIDER_ERROR, model=model)


class MalformedResponseError(GenerationError):
    """Response content is empty, not JSON, or lacks the required field."""

    def __init__(self, message: str, model: str = ""):
        super().__init__(message, ErrorCode.MALFORMED_RESPONSE, model=model)


class PersistenceError(InfographicsException):
    """Writing pipeline results to the database failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.PERSISTENCE_ERROR,
            status_code=500,
            details=details
        )


class GenerationUnavailableError(InfographicsException):
    """Generation was requested but no LLM provider is configured."""

    def __init__(self, message: str = "Page generation is not configured. Set LLM_API_KEY."):
        super().__init__(
            message,
            ErrorCode.SERVICE_UNAVAILABLE,
            status_code=503,
        )
