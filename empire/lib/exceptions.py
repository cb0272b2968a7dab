"""
Custom exception hierarchy for Empire.

All exceptions inherit from EmpireException, enabling catch-all for
Empire-specific errors at the API boundary while keeping the ability to
catch specific error types in services.

Taxonomy:
    - ValidationError: rejected before any store call
    - StoreError / ConstraintViolation: remote store failures, including
      constraint violations carrying their SQLSTATE code
    - AuthenticationError: missing, invalid or expired credentials
    - Everything else is unanticipated and reported generically
"""

from __future__ import annotations


class EmpireException(Exception):
    """Base exception for all Empire errors."""

    #: Error code from empire.lib.errors used when building the API envelope
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigurationError(EmpireException):
    """Missing environment variables, invalid config values, or startup failures."""

    code = "CONFIGURATION_ERROR"


class ValidationError(EmpireException):
    """Input validation failures caught before any store call."""

    code = "VALIDATION_ERROR"


class AuthenticationError(EmpireException):
    """Missing, malformed, invalid or expired bearer credentials."""

    code = "AUTH_REQUIRED"


class NotFoundError(EmpireException):
    """Requested row does not exist or is not owned by the caller."""

    code = "NOT_FOUND"


class ConflictError(EmpireException):
    """Request conflicts with current state (e.g. deleting a referenced category)."""

    code = "CONFLICT"


class MissionLockedError(EmpireException):
    """Extra mission completion attempted before the day's highlight is done."""

    code = "MISSION_LOCKED"


class StoreError(EmpireException):
    """Remote store failures (connection, query, unexpected responses)."""

    code = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """The store could not be reached. Read operations may retry on this."""

    code = "STORE_UNAVAILABLE"


class ConstraintViolation(StoreError):
    """
    A store constraint rejected a write.

    Attributes:
        sqlstate: Postgres SQLSTATE code (23505 unique, 23503 foreign key,
            23514 check, 23502 not null)
        constraint: Constraint or column description when the driver reports one
    """

    code = "CONSTRAINT_VIOLATION"

    def __init__(
        self,
        message: str,
        *,
        sqlstate: str,
        constraint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate
        self.constraint = constraint

    @property
    def is_unique_violation(self) -> bool:
        return self.sqlstate == "23505"

    @property
    def is_foreign_key_violation(self) -> bool:
        return self.sqlstate == "23503"


class PartialWriteError(StoreError):
    """
    A multi-step write failed after an earlier step had already committed.

    The committed steps are not compensated; the store is left partially
    written and the caller must retry or repair.
    """

    code = "PARTIAL_WRITE"

    def __init__(self, message: str, *, completed_steps: list[str]) -> None:
        super().__init__(message)
        self.completed_steps = completed_steps
