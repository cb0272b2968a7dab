"""
Centralized Error Response Builder for Empire.

Provides consistent error codes and user-facing messages for the API,
service and store layers. Store constraint violations are pattern-matched
on their SQLSTATE code and translated into a specific message; anything
unanticipated gets a generic message.

The builder returns structured error dicts compatible with the API
response envelope.
"""

from __future__ import annotations

from typing import Any

from empire.lib.exceptions import ConstraintViolation

# =============================================================================
# Error Code Constants
# =============================================================================

AUTH_REQUIRED = "AUTH_REQUIRED"
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"
CONFLICT = "CONFLICT"
CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
STORE_ERROR = "STORE_ERROR"
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
PARTIAL_WRITE = "PARTIAL_WRITE"
MISSION_LOCKED = "MISSION_LOCKED"
HIGHLIGHT_EXISTS = "HIGHLIGHT_EXISTS"
NO_HIGHLIGHT_CANDIDATE = "NO_HIGHLIGHT_CANDIDATE"
DUPLICATE_CATEGORY = "DUPLICATE_CATEGORY"
CATEGORY_HAS_CHILDREN = "CATEGORY_HAS_CHILDREN"
CATEGORY_IN_USE = "CATEGORY_IN_USE"
ACTIVE_PLAN_EXISTS = "ACTIVE_PLAN_EXISTS"

# =============================================================================
# Message Registry
# =============================================================================

_ERROR_MESSAGES: dict[str, str] = {
    AUTH_REQUIRED: "Authentication is required.",
    NOT_FOUND: "The requested resource was not found.",
    VALIDATION_ERROR: "Invalid input. Please check your request.",
    INTERNAL_ERROR: "An unexpected error occurred.",
    CONFLICT: "The request conflicts with the current state.",
    CONSTRAINT_VIOLATION: "The change was rejected by a data constraint.",
    STORE_ERROR: "Could not reach your data. Please try again.",
    STORE_UNAVAILABLE: "Could not reach your data. Please try again.",
    PARTIAL_WRITE: "The change was only partially saved. Please retry.",
    MISSION_LOCKED: "Unlock by finishing Highlight",
    HIGHLIGHT_EXISTS: "A highlight already exists for today. You can only have one.",
    NO_HIGHLIGHT_CANDIDATE: (
        "No missions to choose from. Add or schedule a mission for today "
        "to set as a highlight."
    ),
    DUPLICATE_CATEGORY: "A category with this name already exists under this parent",
    CATEGORY_HAS_CHILDREN: (
        "Cannot delete category with subcategories. Delete subcategories first."
    ),
    CATEGORY_IN_USE: (
        "Cannot delete category that is used by goals. Move or delete goals first."
    ),
    ACTIVE_PLAN_EXISTS: "You already have an active 3-month plan.",
}

_GENERIC_MESSAGE = "An error occurred."

# SQLSTATE -> error code for constraint violations without a more specific mapping
_SQLSTATE_CODES: dict[str, str] = {
    "23505": CONFLICT,
    "23503": CONFLICT,
    "23514": VALIDATION_ERROR,
    "23502": VALIDATION_ERROR,
}


# =============================================================================
# Error Response Builder
# =============================================================================


def get_error_message(code: str) -> str:
    """
    Get the user-facing message for an error code.

    Falls back to a generic message if the error code is unknown.
    """
    return _ERROR_MESSAGES.get(code, _GENERIC_MESSAGE)


def code_for_constraint(violation: ConstraintViolation) -> str:
    """Map a constraint violation to the closest generic error code."""
    return _SQLSTATE_CODES.get(violation.sqlstate, CONSTRAINT_VIOLATION)


def build_error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a structured error response dict.

    The returned dict is compatible with the API envelope error field:
    { "code": "...", "message": "..." }

    Args:
        code: Error code constant (e.g. AUTH_REQUIRED, NOT_FOUND)
        message: Optional override message (bypasses the registry)
        details: Optional additional error details

    Returns:
        Structured error dict: {"code": str, "message": str, "details": dict | None}
    """
    resolved_message = message if message else get_error_message(code)
    error: dict[str, Any] = {
        "code": code,
        "message": resolved_message,
    }
    if details is not None:
        error["details"] = details
    return error


__all__ = [
    "AUTH_REQUIRED",
    "NOT_FOUND",
    "VALIDATION_ERROR",
    "INTERNAL_ERROR",
    "CONFLICT",
    "CONSTRAINT_VIOLATION",
    "STORE_ERROR",
    "STORE_UNAVAILABLE",
    "PARTIAL_WRITE",
    "MISSION_LOCKED",
    "HIGHLIGHT_EXISTS",
    "NO_HIGHLIGHT_CANDIDATE",
    "DUPLICATE_CATEGORY",
    "CATEGORY_HAS_CHILDREN",
    "CATEGORY_IN_USE",
    "ACTIVE_PLAN_EXISTS",
    "get_error_message",
    "code_for_constraint",
    "build_error_response",
]
