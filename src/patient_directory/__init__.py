"""Patient directory: a permission-gated facade over patient record storage.

Typical wiring:

    >>> from src.patient_directory import build_patient_directory_service
    >>> service = build_patient_directory_service(context)
    >>> service.find_patients("Smith")
"""

import logging

from .exceptions import (
    AuthorizationError,
    DatabaseConnectionError,
    DatabaseError,
    PatientDirectoryError,
    ValidationError,
)
from .gateway import MongoStorageGateway, StorageGateway, get_connection_manager
from .models import (
    Location,
    Patient,
    PatientIdentifier,
    PatientIdentifierType,
    Person,
    Relationship,
    RelationshipType,
    Tribe,
)
from .security import (
    AuditLogger,
    AuthContext,
    AuthenticationManager,
    Privilege,
    SecurityContext,
    UserRole,
)
from .service import PatientDirectoryService

logger = logging.getLogger(__name__)


def build_patient_directory_service(
    auth_context: AuthContext,
    gateway: StorageGateway | None = None,
    config=None,
) -> PatientDirectoryService:
    """Wire a service from settings.

    Connects the shared ConnectionManager and builds a MongoStorageGateway
    unless ``gateway`` is given; audit logging follows the security settings.

    Args:
        auth_context: The caller's session
        gateway: Storage gateway to use instead of MongoDB
        config: Settings instance; the module-level settings if omitted

    Raises:
        DatabaseConnectionError: If MongoDB cannot be reached
    """
    if config is None:
        from src.config.settings import settings as config

    if gateway is None:
        manager = get_connection_manager(config)
        manager.connect()
        gateway = MongoStorageGateway(
            manager.get_database(), identifier_regex=config.patient_identifier_regex
        )
        logger.info(f"Using MongoDB storage gateway on database {config.mongodb_database}")

    audit_logger = AuditLogger(config.security_config)
    return PatientDirectoryService(auth_context, gateway, audit_logger=audit_logger)


__all__ = [
    "AuditLogger",
    "AuthContext",
    "AuthenticationManager",
    "AuthorizationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "Location",
    "MongoStorageGateway",
    "Patient",
    "PatientDirectoryError",
    "PatientDirectoryService",
    "PatientIdentifier",
    "PatientIdentifierType",
    "Person",
    "Privilege",
    "Relationship",
    "RelationshipType",
    "SecurityContext",
    "StorageGateway",
    "Tribe",
    "UserRole",
    "ValidationError",
    "build_patient_directory_service",
]
