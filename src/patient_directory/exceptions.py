"""Exception hierarchy for the patient directory.

ARCHITECTURAL DECISION RECORD (ADR):
====================================

Problem:
--------
The directory sits between callers (UI, API handlers, batch jobs) and a
persistence layer. Callers need to tell three situations apart:
1. The caller is not allowed to do what it asked (re-prompt, deny the action)
2. The store failed (retry later, alert)
3. The request itself was malformed

Generic Python exceptions (PermissionError, RuntimeError, ...) blur these.

Solution:
---------
A single root, PatientDirectoryError, with domain categories underneath:

- SecurityError: authentication and privilege failures
- DatabaseError: connection, query, timeout and integrity failures
- ValidationError: malformed input
- ConfigurationError: bad settings at startup

Each exception carries structured metadata:
- error_code: machine-readable identifier (e.g. "AUTHORIZATION_FAILED")
- message: human-readable description
- details: additional context (privilege, collection, user_id, ...)
- timestamp / request_id: for correlating log lines
- http_status_code: for whatever HTTP layer sits above the directory

Implementation Notes:
---------------------
- Exceptions are plain dataclasses compared by identity; Python sets
  __traceback__, __cause__ and __notes__ on them while they propagate
- All exceptions serialize to a dict for API responses
- Error codes follow DOMAIN_SPECIFIC_ERROR naming

Usage Example:
--------------
```python
try:
    collection.find_one({"patient_id": patient_id})
except pymongo.errors.PyMongoError as e:
    raise convert_to_directory_exception(
        e, context={"collection": "patients", "operation": "get_patient"}
    ) from e
```
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

# =============================================================================
# BASE EXCEPTION CLASS
# =============================================================================


@dataclass(eq=False)
class PatientDirectoryError(Exception):
    """Base exception for all patient directory errors.

    Attributes:
    -----------
    message : str
        Human-readable error description for developers and logs
    error_code : str
        Machine-readable error identifier (e.g., "VALIDATION_ERROR")
    details : dict
        Additional context about the error
    timestamp : str
        ISO 8601 timestamp when the error occurred
    request_id : str
        Unique identifier for this error instance
    http_status_code : int
        HTTP status code for API responses
    original_exception : Optional[Exception]
        The underlying exception that caused this error
    """

    message: str
    error_code: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    request_id: str = field(default_factory=lambda: str(uuid4()))
    http_status_code: int = 500
    original_exception: Exception | None = None

    def __str__(self) -> str:
        """Human-readable error representation for logs."""
        error_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            error_msg += f" | Details: {self.details}"
        if self.original_exception:
            error_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
            )
        return error_msg

    def __repr__(self) -> str:
        """Developer-friendly representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"request_id='{self.request_id}', "
            f"timestamp='{self.timestamp}'"
            f")"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON serialization.

        Returns:
        --------
        dict with keys: error, error_code, details, timestamp, request_id,
        http_status_code and, when chained, original_error
        """
        error_dict = {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
            "http_status_code": self.http_status_code,
        }

        if self.original_exception:
            error_dict["original_error"] = {
                "type": type(self.original_exception).__name__,
                "message": str(self.original_exception),
                "traceback": traceback.format_exception(
                    type(self.original_exception),
                    self.original_exception,
                    self.original_exception.__traceback__,
                ),
            }

        return error_dict


# =============================================================================
# SECURITY EXCEPTIONS
# =============================================================================
# Security errors are always recoverable by the caller: the process keeps
# running, the caller re-authenticates or the UI denies the action.


@dataclass(eq=False)
class SecurityError(PatientDirectoryError):
    """Base class for security-related errors."""

    error_code: str = "SECURITY_ERROR"
    http_status_code: int = 403


@dataclass(eq=False)
class AuthorizationError(SecurityError):
    """The current session lacks authentication or a required privilege.

    ``required_privilege`` names the missing privilege. It is ``None`` when
    the failed precondition was authentication itself.

    Example:
    --------
    >>> raise AuthorizationError.for_privilege("View Patients")
    >>> raise AuthorizationError.for_authentication()
    """

    error_code: str = "AUTHORIZATION_FAILED"
    http_status_code: int = 403
    required_privilege: str | None = None

    @classmethod
    def for_privilege(cls, privilege: str, **details: Any) -> "AuthorizationError":
        """Build the error raised when ``privilege`` is missing."""
        return cls(
            message=f"Privilege required: {privilege}",
            details={"required_privilege": privilege, **details},
            required_privilege=privilege,
        )

    @classmethod
    def for_authentication(cls, **details: Any) -> "AuthorizationError":
        """Build the error raised when the session is not authenticated."""
        return cls(
            message="Authentication required",
            details=dict(details),
            http_status_code=401,
        )


# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================


@dataclass(eq=False)
class DatabaseError(PatientDirectoryError):
    """Base class for all persistence failures raised by storage gateways."""

    error_code: str = "DATABASE_ERROR"
    http_status_code: int = 503


@dataclass(eq=False)
class DatabaseConnectionError(DatabaseError):
    """MongoDB unreachable, pool closed or authentication to the server failed."""

    error_code: str = "DB_CONNECTION_FAILED"
    http_status_code: int = 503


@dataclass(eq=False)
class QueryExecutionError(DatabaseError):
    """A query or write was rejected by the server."""

    error_code: str = "QUERY_EXECUTION_FAILED"
    http_status_code: int = 500


@dataclass(eq=False)
class DatabaseTimeoutError(DatabaseError):
    """An operation exceeded its server-side time limit."""

    error_code: str = "DB_TIMEOUT"
    http_status_code: int = 504


@dataclass(eq=False)
class DatabaseIntegrityError(DatabaseError):
    """Duplicate key or similar constraint violation. Do not retry."""

    error_code: str = "DB_INTEGRITY_ERROR"
    http_status_code: int = 409


# =============================================================================
# VALIDATION / CONFIGURATION EXCEPTIONS
# =============================================================================


@dataclass(eq=False)
class ValidationError(PatientDirectoryError):
    """Input validation failures (client errors, never retried)."""

    error_code: str = "VALIDATION_ERROR"
    http_status_code: int = 400


@dataclass(eq=False)
class ConfigurationError(PatientDirectoryError):
    """Configuration or initialization errors.

    These should crash the application at startup rather than being caught.
    """

    error_code: str = "CONFIGURATION_ERROR"
    http_status_code: int = 500


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def convert_to_directory_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: dict[str, Any] | None = None,
) -> PatientDirectoryError:
    """Convert any exception to an appropriate directory exception.

    Used by storage gateways at the driver boundary so that callers only ever
    see this hierarchy.

    Args:
    -----
    exception : Exception
        The original exception to convert
    default_message : str
        Fallback message if exception type is unknown
    context : dict, optional
        Additional context to include in error details

    Returns:
    --------
    PatientDirectoryError or subclass
    """
    import pymongo.errors

    context = context or {}

    if isinstance(exception, PatientDirectoryError):
        return exception

    if isinstance(
        exception, (pymongo.errors.ConnectionFailure, pymongo.errors.ServerSelectionTimeoutError)
    ):
        return DatabaseConnectionError(
            message="Failed to connect to database",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    # ExecutionTimeout inherits from OperationFailure, so it is checked first
    if isinstance(exception, pymongo.errors.ExecutionTimeout):
        return DatabaseTimeoutError(
            message="Database operation timed out",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    # DuplicateKeyError inherits from OperationFailure as well
    if isinstance(exception, pymongo.errors.DuplicateKeyError):
        return DatabaseIntegrityError(
            message="Duplicate key",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    if isinstance(exception, pymongo.errors.OperationFailure):
        return QueryExecutionError(
            message="Database query failed",
            details={**context, "error": str(exception)},
            original_exception=exception,
        )

    if exception.__class__.__name__ == "ValidationError":
        return ValidationError(
            message="Request validation failed",
            details={**context, "validation_errors": str(exception)},
            original_exception=exception,
        )

    return PatientDirectoryError(
        message=default_message,
        error_code="INTERNAL_ERROR",
        details={**context, "error_type": type(exception).__name__, "error": str(exception)},
        original_exception=exception,
    )
