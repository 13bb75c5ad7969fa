"""Security layer of the patient directory.

Security Principles Applied:
1. Least Privilege: each operation names the single privilege it needs
2. Fail Secure: a failed check raises before any data access happens
3. Audit Everything: granted and denied decisions are both recorded
4. Explicit Context: the caller's session is passed in, never looked up globally

This package provides:
- Privileges, roles and the AuthContext protocol (authentication)
- Session management (AuthenticationManager)
- Privilege and authentication checks/decorators (authorization)
- Audit logging of access decisions (audit)
"""

from .audit import AuditLogger
from .authentication import (
    ROLE_PRIVILEGES,
    AuthContext,
    AuthenticationManager,
    Privilege,
    SecurityContext,
    UserRole,
)
from .authorization import (
    AUTHENTICATED,
    check_authenticated,
    check_privilege,
    require_authentication,
    require_privilege,
)
from .config import SecurityConfig

__all__ = [
    "AUTHENTICATED",
    "ROLE_PRIVILEGES",
    "AuditLogger",
    "AuthContext",
    "AuthenticationManager",
    "Privilege",
    "SecurityConfig",
    "SecurityContext",
    "UserRole",
    "check_authenticated",
    "check_privilege",
    "require_authentication",
    "require_privilege",
]
