"""
Standardized API Response Module

Provides consistent response formatting across all API endpoints.

RESPONSE FORMAT:
    Success:
        {
            "data": <response data>,
            "status": "success"
        }

    Error:
        {
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }
"""

from typing import Any, Optional


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Validation errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_STATUS = "INVALID_STATUS"

    # Business-rule outcomes (400/409)
    PACKAGE_NOT_CONFIRMED = "PACKAGE_NOT_CONFIRMED"
    PACKAGE_EXPIRED = "PACKAGE_EXPIRED"
    NO_REMAINING_SESSIONS = "NO_REMAINING_SESSIONS"
    SOLD_OUT = "SOLD_OUT"
    DATE_CLOSED = "DATE_CLOSED"
    CAPACITY_EXHAUSTED = "CAPACITY_EXHAUSTED"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    APPOINTMENT_NOT_FOUND = "APPOINTMENT_NOT_FOUND"
    PACKAGE_DEFINITION_NOT_FOUND = "PACKAGE_DEFINITION_NOT_FOUND"

    # Server errors (500)
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def success_response(data: Any, message: Optional[str] = None, **extra: Any) -> dict:
    """
    Create a standardized success response dict.

    Extra keyword arguments (e.g. pagination) are added at the top level.
    """
    response = {"data": data, "status": "success"}
    if message:
        response["message"] = message
    response.update(extra)
    return response


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """Create a standardized error response dict."""
    response = {
        "error": {
            "code": code,
            "message": message,
        },
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
