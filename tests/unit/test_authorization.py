"""Unit tests for authorization checks, decorators and the audit logger."""

import json
import logging
from unittest.mock import MagicMock

import pytest

from src.patient_directory.exceptions import AuthorizationError
from src.patient_directory.security.audit import AUDIT_LOGGER_NAME, AuditLogger
from src.patient_directory.security.authentication import Privilege
from src.patient_directory.security.authorization import (
    AUTHENTICATED,
    check_authenticated,
    check_privilege,
    require_authentication,
    require_privilege,
)
from src.patient_directory.security.config import SecurityConfig


class _Guarded:
    """Minimal object shaped like the directory service."""

    def __init__(self, auth_context, audit_logger=None):
        self.auth_context = auth_context
        self.audit_logger = audit_logger
        self.calls = 0

    @require_privilege(Privilege.DELETE_PATIENTS)
    def purge(self, value):
        self.calls += 1
        return value * 2

    @require_authentication()
    def lookup(self):
        self.calls += 1
        return "ok"


class _ForeignContext:
    """An AuthContext that is not a SecurityContext."""

    def __init__(self, authenticated, privileges=()):
        self._authenticated = authenticated
        self._privileges = set(privileges)
        self.asked = []

    def is_authenticated(self):
        return self._authenticated

    def has_privilege(self, privilege):
        self.asked.append(privilege)
        return privilege in self._privileges


@pytest.mark.unit
class TestChecks:
    def test_check_privilege_passes(self, context_with):
        check_privilege(context_with(Privilege.VIEW_PATIENTS), Privilege.VIEW_PATIENTS)

    def test_check_privilege_raises_with_name(self, context_with):
        with pytest.raises(AuthorizationError) as exc_info:
            check_privilege(context_with(), Privilege.ADD_PATIENTS, operation="create_patient")

        assert exc_info.value.required_privilege == "Add Patients"
        assert exc_info.value.details["operation"] == "create_patient"

    def test_check_authenticated(self, authenticated_context, anonymous_context):
        check_authenticated(authenticated_context)

        with pytest.raises(AuthorizationError) as exc_info:
            check_authenticated(anonymous_context)
        assert exc_info.value.required_privilege is None

    def test_foreign_context_is_asked_with_privilege_member(self):
        """Any AuthContext implementation works; it receives the Privilege."""
        context = _ForeignContext(True, {Privilege.VIEW_PATIENTS})

        check_privilege(context, Privilege.VIEW_PATIENTS)

        assert context.asked == [Privilege.VIEW_PATIENTS]


@pytest.mark.unit
class TestDecorators:
    def test_granted_runs_body(self, context_with):
        guarded = _Guarded(context_with(Privilege.DELETE_PATIENTS))

        assert guarded.purge(21) == 42
        assert guarded.calls == 1

    def test_denied_skips_body(self, context_with):
        guarded = _Guarded(context_with(Privilege.EDIT_PATIENTS))

        with pytest.raises(AuthorizationError):
            guarded.purge(21)
        assert guarded.calls == 0

    def test_authentication_decorator(self, anonymous_context, authenticated_context):
        assert _Guarded(authenticated_context).lookup() == "ok"

        guarded = _Guarded(anonymous_context)
        with pytest.raises(AuthorizationError):
            guarded.lookup()
        assert guarded.calls == 0

    def test_metadata_is_preserved(self):
        assert _Guarded.purge.__name__ == "purge"
        assert _Guarded.purge.access_requirement == "Delete Patients"
        assert _Guarded.lookup.access_requirement == AUTHENTICATED

    def test_audit_logger_receives_decision(self, context_with):
        audit_logger = MagicMock()
        guarded = _Guarded(context_with(), audit_logger)

        with pytest.raises(AuthorizationError):
            guarded.purge(1)

        audit_logger.log_access.assert_called_once()
        args = audit_logger.log_access.call_args.args
        assert args[1:4] == ("purge", "Delete Patients", False)
        assert args[4] == "Privilege required: Delete Patients"


@pytest.mark.unit
class TestAuditLogger:
    @staticmethod
    def _entries(caplog, prefix="ACCESS: "):
        return [
            json.loads(record.getMessage()[len(prefix) :])
            for record in caplog.records
            if record.name == AUDIT_LOGGER_NAME and record.getMessage().startswith(prefix)
        ]

    def test_access_entry_is_json(self, caplog, context_with):
        audit = AuditLogger(SecurityConfig())

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log_access(
                context_with(Privilege.VIEW_PATIENTS), "get_patient", "View Patients", True
            )

        [entry] = self._entries(caplog)
        assert entry["user_id"] == "tester"
        assert entry["operation"] == "get_patient"
        assert entry["granted"] is True
        assert entry["session_id"] == "sess...cdef"

    def test_denial_also_warns(self, caplog, anonymous_context):
        audit = AuditLogger(SecurityConfig())

        with caplog.at_level(logging.INFO):
            audit.log_access(anonymous_context, "get_tribes", AUTHENTICATED, False, "nope")

        assert self._entries(caplog)[0]["granted"] is False
        assert any(
            record.levelno == logging.WARNING and "Access denied" in record.getMessage()
            for record in caplog.records
        )

    def test_disabled_logger_writes_nothing(self, caplog, context_with):
        audit = AuditLogger(SecurityConfig(enable_audit_logging=False))

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log_access(context_with(), "get_patient", "View Patients", False)

        assert self._entries(caplog) == []

    def test_granted_entries_can_be_suppressed(self, caplog, context_with):
        audit = AuditLogger(SecurityConfig(log_granted_access=False))

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log_access(context_with(), "get_patient", "View Patients", True)
            audit.log_access(context_with(), "get_patient", "View Patients", False)

        assert [entry["granted"] for entry in self._entries(caplog)] == [False]

    def test_foreign_context_is_described(self, caplog):
        audit = AuditLogger(SecurityConfig())

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log_access(_ForeignContext(True), "get_tribes", AUTHENTICATED, True)

        [entry] = self._entries(caplog)
        assert entry["role"] == "unknown"
        assert entry["session_id"] == "[UNKNOWN]"

    def test_security_event(self, caplog):
        audit = AuditLogger(SecurityConfig())

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log_security_event("SESSION_HIJACK", "CRITICAL", {"ip": "1.2.3.4"})

        [entry] = self._entries(caplog, prefix="SECURITY_EVENT: ")
        assert entry["event_type"] == "SESSION_HIJACK"
        assert entry["details"] == {"ip": "1.2.3.4"}

    @pytest.mark.parametrize(
        "session_id, expected",
        [("abcdefghijkl", "abcd...ijkl"), ("short", "[INVALID]"), ("", "[INVALID]")],
    )
    def test_session_redaction(self, session_id, expected):
        assert AuditLogger._redact_session_id(session_id) == expected

    def test_file_handler_when_path_configured(self, tmp_path):
        path = tmp_path / "audit.log"
        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        saved = list(audit_logger.handlers)
        for handler in saved:
            audit_logger.removeHandler(handler)

        try:
            AuditLogger(SecurityConfig(audit_log_path=str(path)))
            file_handlers = [
                h for h in audit_logger.handlers if isinstance(h, logging.FileHandler)
            ]
            assert len(file_handlers) == 1
            assert file_handlers[0].baseFilename == str(path)
        finally:
            for handler in list(audit_logger.handlers):
                audit_logger.removeHandler(handler)
                handler.close()
            for handler in saved:
                audit_logger.addHandler(handler)
