"""Audit logging of access decisions.

Every directory operation starts with an authorization decision. This module
records those decisions on a dedicated ``audit`` logger, separate from
application logs, so that access to patient records can be reviewed.

Audit Requirements:
- Who asked (user_id, role, IP)
- What was asked for (operation)
- Which precondition applied (privilege or authentication)
- When (timestamp)
- Result (granted or denied)
"""

import json
import logging
from datetime import datetime
from typing import Any

from .authentication import AuthContext, SecurityContext
from .config import SecurityConfig

AUDIT_LOGGER_NAME = "patient_directory.audit"


class AuditLogger:
    """Writes JSON audit entries for access decisions and security events.

    Audit entries go to the ``patient_directory.audit`` logger. When the
    configuration names an ``audit_log_path`` a file handler is attached once;
    otherwise entries propagate to whatever handlers the application set up.
    """

    def __init__(self, config: SecurityConfig | None = None):
        """Initialize audit logger with security configuration.

        Args:
            config: Security configuration with audit settings
        """
        self.config = config or SecurityConfig()

        self.audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.audit_logger.setLevel(logging.INFO)

        if self.config.audit_log_path and not self.audit_logger.handlers:
            audit_handler = logging.FileHandler(self.config.audit_log_path)
            audit_handler.setLevel(logging.INFO)
            audit_handler.setFormatter(
                logging.Formatter("%(asctime)s - AUDIT - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
            )
            self.audit_logger.addHandler(audit_handler)

        self.logger = logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self.config.enable_audit_logging

    def log_access(
        self,
        context: AuthContext,
        operation: str,
        requirement: str,
        granted: bool,
        error: str | None = None,
    ) -> None:
        """Record one authorization decision.

        Args:
            context: The caller's auth context
            operation: Directory operation name (e.g. "get_patient")
            requirement: Privilege name, or "authenticated"
            granted: Whether the precondition held
            error: Error message if denied
        """
        if not self.enabled:
            return
        if granted and not self.config.log_granted_access:
            return

        audit_entry = {
            "timestamp": datetime.utcnow().isoformat(),
            **self._describe_context(context),
            "operation": operation,
            "requirement": requirement,
            "granted": granted,
            "error": error,
        }

        self.audit_logger.info(f"ACCESS: {json.dumps(audit_entry, default=str)}")

        if not granted:
            self.logger.warning(
                f"Access denied: {operation} requires {requirement} "
                f"(user={audit_entry['user_id']})",
                extra={"operation": operation, "requirement": requirement},
            )

    def log_security_event(
        self,
        event_type: str,
        severity: str,
        details: dict[str, Any],
        context: AuthContext | None = None,
    ) -> None:
        """Record a security event that is not a single access decision.

        Args:
            event_type: Type of security event
            severity: Event severity (INFO, WARNING, ERROR, CRITICAL)
            details: Event details
            context: Auth context if available
        """
        if not self.enabled:
            return

        audit_entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "event_type": event_type,
            "severity": severity,
            "details": details,
        }
        if context is not None:
            audit_entry.update(self._describe_context(context))

        self.audit_logger.info(f"SECURITY_EVENT: {json.dumps(audit_entry, default=str)}")

        if severity in ("ERROR", "CRITICAL"):
            self.logger.error(
                f"Security Event: {event_type} - {details}",
                extra={"event_type": event_type, "severity": severity},
            )

    def _describe_context(self, context: AuthContext) -> dict[str, Any]:
        if isinstance(context, SecurityContext):
            return {
                "user_id": context.user_id,
                "role": context.role.value,
                "session_id": self._redact_session_id(context.session_id),
                "ip_address": context.ip_address,
            }
        # Foreign AuthContext implementations only promise the two checks
        return {
            "user_id": getattr(context, "user_id", "unknown"),
            "role": "unknown",
            "session_id": "[UNKNOWN]",
            "ip_address": getattr(context, "ip_address", "unknown"),
        }

    @staticmethod
    def _redact_session_id(session_id: str) -> str:
        """Show only the first and last 4 characters of a session id."""
        if not session_id or len(session_id) < 8:
            return "[INVALID]"
        return f"{session_id[:4]}...{session_id[-4:]}"
