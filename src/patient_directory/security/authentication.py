"""Authentication and privilege model for the patient directory.

Every directory operation is preconditioned on either an authenticated
session or a named privilege. This module defines those privileges, the
roles that bundle them, the ``AuthContext`` protocol the directory queries,
and a concrete session-backed implementation of it.

Rationale for privilege-based access in a patient registry:
- Least Privilege: registration clerks, providers and administrators need
  different subsets of create/view/edit/delete
- Audit Trail: named privileges make denials meaningful in the audit log
- Explicit Context: the context is handed to the directory by the caller,
  never looked up from global state

Session Security:
- IP validation prevents session hijacking
- Timeouts prevent stale authenticated sessions
- Secure token generation prevents prediction attacks
"""

import logging
import secrets
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .config import SecurityConfig

logger = logging.getLogger(__name__)


class Privilege(str, Enum):
    """Named capabilities checked before directory operations."""

    ADD_PATIENTS = "Add Patients"
    VIEW_PATIENTS = "View Patients"
    EDIT_PATIENTS = "Edit Patients"
    DELETE_PATIENTS = "Delete Patients"
    MANAGE_RELATIONSHIPS = "Manage Relationships"

    @classmethod
    def coerce(cls, value: "Privilege | str") -> "Privilege":
        """Accept a member, its display value or its enum name.

        Raises:
            ValueError: If ``value`` names no privilege
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value]
        except KeyError:
            raise ValueError(f"Unknown privilege: {value!r}") from None


class UserRole(str, Enum):
    """Roles bundling privileges.

    - SYSTEM_DEVELOPER: every privilege (administration, data repair)
    - DATA_MANAGER: view, edit and hard-delete patient records
    - REGISTRAR: registers and maintains patient demographics
    - PROVIDER: reads patient records and manages relationships
    - AUTHENTICATED: a logged-in user with no patient privileges
    - ANONYMOUS: no session at all
    """

    SYSTEM_DEVELOPER = "system_developer"
    DATA_MANAGER = "data_manager"
    REGISTRAR = "registrar"
    PROVIDER = "provider"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


ROLE_PRIVILEGES: dict[UserRole, frozenset[Privilege]] = {
    UserRole.SYSTEM_DEVELOPER: frozenset(Privilege),
    UserRole.DATA_MANAGER: frozenset(
        {Privilege.VIEW_PATIENTS, Privilege.EDIT_PATIENTS, Privilege.DELETE_PATIENTS}
    ),
    UserRole.REGISTRAR: frozenset(
        {Privilege.ADD_PATIENTS, Privilege.VIEW_PATIENTS, Privilege.EDIT_PATIENTS}
    ),
    UserRole.PROVIDER: frozenset({Privilege.VIEW_PATIENTS, Privilege.MANAGE_RELATIONSHIPS}),
    UserRole.AUTHENTICATED: frozenset(),
    UserRole.ANONYMOUS: frozenset(),
}


@runtime_checkable
class AuthContext(Protocol):
    """What the directory needs to know about the caller's session.

    The directory only ever reads from an AuthContext; it never mutates it.
    """

    def is_authenticated(self) -> bool: ...

    def has_privilege(self, privilege: Privilege | str) -> bool: ...


class SecurityContext(BaseModel):
    """Authentication state and privileges of one session.

    Implements ``AuthContext``. An unauthenticated context holds no
    privileges regardless of what its ``privileges`` list contains.
    """

    user_id: str = Field(..., description="Unique user identifier")
    role: UserRole = Field(..., description="User's role")
    session_id: str = Field(..., description="Unique session identifier")
    ip_address: str = Field("unknown", description="Client IP address for security tracking")
    authenticated: bool = Field(True, description="Whether the session passed authentication")
    authenticated_at: datetime = Field(
        default_factory=datetime.utcnow, description="Timestamp when authentication occurred"
    )
    privileges: list[Privilege] = Field(
        default_factory=list, description="Privileges granted to this session"
    )

    @classmethod
    def anonymous(cls, ip_address: str = "unknown") -> "SecurityContext":
        """A context for callers that never authenticated."""
        return cls(
            user_id="anonymous",
            role=UserRole.ANONYMOUS,
            session_id="none",
            ip_address=ip_address,
            authenticated=False,
        )

    def is_authenticated(self) -> bool:
        return self.authenticated

    def has_privilege(self, privilege: Privilege | str) -> bool:
        """Check if the session holds ``privilege``.

        Args:
            privilege: A Privilege member, its display value ("View Patients")
                or its name ("VIEW_PATIENTS")

        Returns:
            bool: True if granted. Unknown privilege names are never granted.
        """
        if not self.authenticated:
            return False
        if self.role == UserRole.SYSTEM_DEVELOPER:
            return True
        try:
            wanted = Privilege.coerce(privilege)
        except ValueError:
            logger.warning(f"Privilege check for unknown privilege {privilege!r}")
            return False
        return wanted in self.privileges

    def is_expired(self, timeout_minutes: int = 30) -> bool:
        """Check if the session is older than ``timeout_minutes``."""
        age = datetime.utcnow() - self.authenticated_at
        return age > timedelta(minutes=timeout_minutes)

    def get_safe_context_dict(self) -> dict:
        """Context as dict with the session id redacted, for logs."""
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "session_id": "[REDACTED]",
            "ip_address": self.ip_address,
            "authenticated": self.authenticated,
            "authenticated_at": self.authenticated_at.isoformat(),
            "privileges": [privilege.value for privilege in self.privileges],
        }


class AuthenticationManager:
    """Issues, validates and revokes sessions.

    Key Security Features:
    - Secure session token generation
    - IP address validation to prevent hijacking
    - Session timeout enforcement
    """

    def __init__(self, config: SecurityConfig):
        """Initialize authentication manager.

        Args:
            config: Security configuration (session timeout)
        """
        self.config = config
        self.sessions: dict[str, SecurityContext] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        user_id: str,
        role: UserRole,
        ip_address: str,
        extra_privileges: tuple[Privilege, ...] = (),
    ) -> str:
        """Authenticate a user and create a session.

        Args:
            user_id: User identifier
            role: User role; determines the base privilege set
            ip_address: Client IP address
            extra_privileges: Privileges granted on top of the role's

        Returns:
            str: Secure session ID

        Raises:
            ValueError: If user_id is empty or role is anonymous
        """
        if not user_id or role == UserRole.ANONYMOUS:
            raise ValueError("Invalid user credentials")

        session_id = secrets.token_urlsafe(32)
        privileges = set(self.get_role_privileges(role)) | set(extra_privileges)

        context = SecurityContext(
            user_id=user_id,
            role=role,
            session_id=session_id,
            ip_address=ip_address,
            authenticated_at=datetime.utcnow(),
            privileges=sorted(privileges, key=lambda privilege: privilege.value),
        )

        with self._lock:
            self.sessions[session_id] = context

        logger.info(
            "Session created",
            extra={"user_id": user_id, "role": role.value, "ip_address": ip_address},
        )

        return session_id

    def validate_session(self, session_id: str, ip_address: str) -> SecurityContext | None:
        """Validate session and check for timeout/hijacking.

        Args:
            session_id: Session ID to validate
            ip_address: Current client IP address

        Returns:
            SecurityContext or None if invalid
        """
        with self._lock:
            context = self.sessions.get(session_id)

        if context is None:
            logger.warning("Invalid session attempted")
            return None

        if context.is_expired(self.config.session_timeout_minutes):
            logger.warning(f"Expired session for user {context.user_id}")
            self.revoke_session(session_id)
            return None

        if context.ip_address != ip_address:
            logger.critical(
                "Possible session hijacking detected",
                extra={
                    "user_id": context.user_id,
                    "original_ip": context.ip_address,
                    "request_ip": ip_address,
                },
            )
            self.revoke_session(session_id)
            return None

        return context

    def revoke_session(self, session_id: str) -> None:
        """Revoke session (logout or security event)."""
        with self._lock:
            context = self.sessions.pop(session_id, None)
        if context is not None:
            logger.info(f"Session revoked for user {context.user_id}")

    def cleanup_expired_sessions(self) -> int:
        """Drop expired sessions. Returns how many were removed."""
        with self._lock:
            expired = [
                session_id
                for session_id, context in self.sessions.items()
                if context.is_expired(self.config.session_timeout_minutes)
            ]
            for session_id in expired:
                del self.sessions[session_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    @staticmethod
    def get_role_privileges(role: UserRole) -> frozenset[Privilege]:
        """Privileges bundled with ``role``."""
        return ROLE_PRIVILEGES.get(role, frozenset())
