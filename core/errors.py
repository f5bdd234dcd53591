"""
Error Code Definitions and Classification.

Centralized error code management with retry logic and consistent
error responses for every orchestration entry point.

Key Features:
    - Explicit error codes for all failure modes
    - Retry classification (PERMANENT, TRANSIENT, THROTTLING)
    - Helper function to determine if error should retry

Exports:
    ErrorCode: Standardized error codes enum
    ErrorClassification: Error category enum
    is_retryable: Helper to check if error should be retried
    get_error_classification: Lookup of an error's classification
    get_http_status_code: HTTP status for an error code
    create_error_response: Standard error response dict
"""

from enum import Enum
from typing import Dict, Any


class ErrorCode(str, Enum):
    """
    Standardized error codes for all orchestration errors.
    """

    # ========================================================================
    # ORCHESTRATION ERRORS - CLIENT ERRORS (HTTP 404/409/400)
    # ========================================================================

    NO_DATASET_FOUND = "NO_DATASET_FOUND"  # Admission against unknown dataset
    NO_WORKFLOW_FOUND = "NO_WORKFLOW_FOUND"  # Nothing stored and nothing supplied
    NO_WORKFLOW_EXECUTION_FOUND = "NO_WORKFLOW_EXECUTION_FOUND"  # Missing or wrong state

    WORKFLOW_ALREADY_EXISTS = "WORKFLOW_ALREADY_EXISTS"  # One workflow per dataset
    WORKFLOW_EXECUTION_ALREADY_EXISTS = "WORKFLOW_EXECUTION_ALREADY_EXISTS"  # Double admission

    PLUGIN_EXECUTION_NOT_ALLOWED = "PLUGIN_EXECUTION_NOT_ALLOWED"  # No valid predecessor
    BAD_CONTENT = "BAD_CONTENT"  # Malformed workflow or registry cap violation

    # ========================================================================
    # INFRASTRUCTURE ERRORS (HTTP 500/502/503)
    # ========================================================================

    EXTERNAL_TASK_ERROR = "EXTERNAL_TASK_ERROR"  # External service failure after retries
    DATABASE_ERROR = "DATABASE_ERROR"
    DATABASE_CONNECTION_FAILED = "DATABASE_CONNECTION_FAILED"
    QUEUE_ERROR = "QUEUE_ERROR"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    THROTTLED = "THROTTLED"

    # ========================================================================
    # GENERIC ERRORS
    # ========================================================================

    CONFIG_ERROR = "CONFIG_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class ErrorClassification(str, Enum):
    """
    Error classification for retry logic.

    Determines whether an error should trigger a retry or fail immediately.
    """

    PERMANENT = "PERMANENT"  # Never retry (client error, won't fix itself)
    TRANSIENT = "TRANSIENT"  # Retry with exponential backoff (temporary issue)
    THROTTLING = "THROTTLING"  # Retry with longer delay (rate limiting)


_ERROR_CLASSIFICATION: Dict[ErrorCode, ErrorClassification] = {
    # PERMANENT - caller must change the request
    ErrorCode.NO_DATASET_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.NO_WORKFLOW_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.NO_WORKFLOW_EXECUTION_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.WORKFLOW_ALREADY_EXISTS: ErrorClassification.PERMANENT,
    ErrorCode.WORKFLOW_EXECUTION_ALREADY_EXISTS: ErrorClassification.PERMANENT,
    ErrorCode.PLUGIN_EXECUTION_NOT_ALLOWED: ErrorClassification.PERMANENT,
    ErrorCode.BAD_CONTENT: ErrorClassification.PERMANENT,
    ErrorCode.CONFIG_ERROR: ErrorClassification.PERMANENT,

    # TRANSIENT - retry with exponential backoff
    ErrorCode.EXTERNAL_TASK_ERROR: ErrorClassification.TRANSIENT,
    ErrorCode.DATABASE_ERROR: ErrorClassification.TRANSIENT,
    ErrorCode.DATABASE_CONNECTION_FAILED: ErrorClassification.TRANSIENT,
    ErrorCode.QUEUE_ERROR: ErrorClassification.TRANSIENT,
    ErrorCode.LOCK_TIMEOUT: ErrorClassification.TRANSIENT,
    ErrorCode.UNEXPECTED_ERROR: ErrorClassification.TRANSIENT,

    # THROTTLING - retry with longer delay
    ErrorCode.THROTTLED: ErrorClassification.THROTTLING,
}


_HTTP_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.NO_DATASET_FOUND: 404,
    ErrorCode.NO_WORKFLOW_FOUND: 404,
    ErrorCode.NO_WORKFLOW_EXECUTION_FOUND: 404,
    ErrorCode.WORKFLOW_ALREADY_EXISTS: 409,
    ErrorCode.WORKFLOW_EXECUTION_ALREADY_EXISTS: 409,
    ErrorCode.PLUGIN_EXECUTION_NOT_ALLOWED: 409,
    ErrorCode.BAD_CONTENT: 400,
    ErrorCode.EXTERNAL_TASK_ERROR: 502,
    ErrorCode.THROTTLED: 429,
    ErrorCode.QUEUE_ERROR: 503,
    ErrorCode.LOCK_TIMEOUT: 503,
}


def get_error_classification(error_code: ErrorCode) -> ErrorClassification:
    """
    Get the classification of an error code.

    Unmapped codes are treated as TRANSIENT.

    Example:
        >>> get_error_classification(ErrorCode.BAD_CONTENT)
        <ErrorClassification.PERMANENT: 'PERMANENT'>
    """
    return _ERROR_CLASSIFICATION.get(error_code, ErrorClassification.TRANSIENT)


def is_retryable(error_code: ErrorCode) -> bool:
    """
    Determine if an error should be retried.

    Example:
        >>> is_retryable(ErrorCode.DATABASE_CONNECTION_FAILED)
        True
        >>> is_retryable(ErrorCode.PLUGIN_EXECUTION_NOT_ALLOWED)
        False
    """
    return get_error_classification(error_code) != ErrorClassification.PERMANENT


def get_http_status_code(error_code: ErrorCode) -> int:
    """
    Get HTTP status code for error code.

    Example:
        >>> get_http_status_code(ErrorCode.NO_WORKFLOW_FOUND)
        404
    """
    return _HTTP_STATUS.get(error_code, 500)


def create_error_response(
    error_code: ErrorCode,
    message: str,
    **extra: Any
) -> Dict[str, Any]:
    """
    Create standardized error response.

    Args:
        error_code: ErrorCode enum value
        message: Human-readable error message
        **extra: Additional fields (dataset_id, execution_id, ...)

    Returns:
        Dict with success=False and classification fields.

    Example:
        >>> create_error_response(ErrorCode.BAD_CONTENT, "empty workflow")["retryable"]
        False
    """
    response = {
        "success": False,
        "error": error_code.value,
        "error_type": get_error_classification(error_code).value,
        "message": message,
        "retryable": is_retryable(error_code),
        "http_status": get_http_status_code(error_code),
    }
    response.update(extra)
    return response


__all__ = [
    "ErrorCode",
    "ErrorClassification",
    "get_error_classification",
    "is_retryable",
    "get_http_status_code",
    "create_error_response",
]
