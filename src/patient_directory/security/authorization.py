"""Authorization checks and decorators for directory operations.

Each directory method declares its precondition with a decorator:

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patient(self, patient_id): ...

    @require_authentication()
    def get_tribes(self): ...

The decorator reads the instance's ``auth_context``, records the decision on
the instance's ``audit_logger`` (when it has one) and raises
``AuthorizationError`` before the method body runs. A denied call therefore
never reaches the storage gateway.
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from ..exceptions import AuthorizationError
from .audit import AuditLogger
from .authentication import AuthContext, Privilege

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Requirement label used for operations that only need a logged-in session
AUTHENTICATED = "authenticated"


def check_authenticated(
    context: AuthContext,
    operation: str = "unknown",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Raise unless ``context`` is authenticated.

    Raises:
        AuthorizationError: "Authentication required", ``required_privilege`` None
    """
    granted = context.is_authenticated()
    error = None if granted else "Authentication required"
    if audit_logger is not None:
        audit_logger.log_access(context, operation, AUTHENTICATED, granted, error)
    if not granted:
        raise AuthorizationError.for_authentication(operation=operation)


def check_privilege(
    context: AuthContext,
    privilege: Privilege,
    operation: str = "unknown",
    audit_logger: AuditLogger | None = None,
) -> None:
    """Raise unless ``context`` holds ``privilege``.

    Raises:
        AuthorizationError: "Privilege required: <name>" carrying the name
    """
    granted = context.has_privilege(privilege)
    error = None if granted else f"Privilege required: {privilege.value}"
    if audit_logger is not None:
        audit_logger.log_access(context, operation, privilege.value, granted, error)
    if not granted:
        raise AuthorizationError.for_privilege(privilege.value, operation=operation)


def require_privilege(privilege: Privilege) -> Callable[[F], F]:
    """Decorator enforcing ``privilege`` on a method of an object exposing
    ``auth_context`` (and optionally ``audit_logger``).

    Args:
        privilege: Required privilege

    Returns:
        Decorated method with the check applied first
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            check_privilege(
                self.auth_context,
                privilege,
                operation=func.__name__,
                audit_logger=getattr(self, "audit_logger", None),
            )
            return func(self, *args, **kwargs)

        wrapper.access_requirement = privilege.value
        return wrapper  # type: ignore

    return decorator


def require_authentication() -> Callable[[F], F]:
    """Decorator enforcing an authenticated session on a method of an object
    exposing ``auth_context`` (and optionally ``audit_logger``)."""

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            check_authenticated(
                self.auth_context,
                operation=func.__name__,
                audit_logger=getattr(self, "audit_logger", None),
            )
            return func(self, *args, **kwargs)

        wrapper.access_requirement = AUTHENTICATED
        return wrapper  # type: ignore

    return decorator
