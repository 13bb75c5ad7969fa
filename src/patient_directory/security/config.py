"""Security configuration with safe defaults.

All security settings live here so that sessions, authorization decisions and
the audit trail are configured in one place.

HIPAA Compliance Notes:
- Audit retention defaults to 7 years
- Sessions expire after 30 minutes of age by default
- Session ids never reach the audit log in plain text
"""

from pydantic import BaseModel, Field, field_validator


class SecurityConfig(BaseModel):
    """Centralized security configuration with safe defaults."""

    # Session settings
    session_timeout_minutes: int = Field(
        default=30, description="Session lifetime before re-authentication is required"
    )

    # Audit settings
    enable_audit_logging: bool = Field(
        default=True, description="Record every access decision on the audit logger"
    )
    audit_log_path: str | None = Field(
        default=None, description="Optional file receiving audit entries"
    )
    audit_retention_days: int = Field(
        default=2555,  # 7 years
        description="Audit log retention period (7 years per HIPAA)",
    )
    log_granted_access: bool = Field(
        default=True,
        description="Also audit successful checks, not only denials",
    )

    @field_validator("session_timeout_minutes")
    @classmethod
    def validate_session_timeout(cls, value: int) -> int:
        """Sessions must expire, but not so fast that users cannot work."""
        if value < 1:
            raise ValueError("session_timeout_minutes must be at least 1")
        if value > 480:
            raise ValueError("session_timeout_minutes cannot exceed 480 (8 hours)")
        return value

    @field_validator("audit_retention_days")
    @classmethod
    def validate_audit_retention(cls, value: int) -> int:
        """Validate audit retention period (1 to 10 years)."""
        if value < 365:
            raise ValueError("audit_retention_days must be at least 365")
        if value > 3650:
            raise ValueError("audit_retention_days cannot exceed 3650 (10 years)")
        return value

    def is_hipaa_compliant(self) -> bool:
        """Check if current configuration meets HIPAA audit requirements."""
        checks = [
            self.enable_audit_logging,
            self.audit_retention_days >= 2555,
            self.session_timeout_minutes <= 480,
        ]
        return all(checks)
