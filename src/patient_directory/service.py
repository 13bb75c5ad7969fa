"""Permission-gated patient directory.

``PatientDirectoryService`` is the only entry point callers use to read or
change patient records. Every public method checks the caller's privilege
(or, for lookup tables, that the caller is logged in) and then forwards to
the storage gateway exactly once, returning whatever the gateway returns.

Failure modes:
    - Missing privilege or session: ``AuthorizationError`` before any storage access
    - Storage failure: the gateway's exception, propagated untouched
    - Not found: ``None`` or an empty collection, never an error

Example:
    >>> service = PatientDirectoryService(context, gateway)
    >>> service.find_patients("Smith")
    [Patient#12, Patient#40]
"""

import logging
import re

from .gateway.base import StorageGateway
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
from .security.audit import AuditLogger
from .security.authentication import AuthContext, Privilege
from .security.authorization import require_authentication, require_privilege

logger = logging.getLogger(__name__)

# Composite searches shorter than this return nothing
MIN_QUERY_LENGTH = 3

_DIGIT = re.compile(r"[0-9]")


class PatientDirectoryService:
    """Guard-and-forward facade over a StorageGateway.

    Args:
        auth_context: The caller's session; read, never modified
        gateway: Storage gateway owning persisted state
        audit_logger: Records each access decision when given
    """

    def __init__(
        self,
        auth_context: AuthContext,
        gateway: StorageGateway,
        audit_logger: AuditLogger | None = None,
    ):
        self.auth_context = auth_context
        self.gateway = gateway
        self.audit_logger = audit_logger

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    @require_privilege(Privilege.ADD_PATIENTS)
    def create_patient(self, patient: Patient) -> None:
        identifiers = ", ".join(pi.identifier for pi in patient.identifiers)
        logger.info(f"Creating patient {patient.patient_id}|{identifiers}")
        self.gateway.create_patient(patient)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patient(self, patient_id: int) -> Patient | None:
        return self.gateway.get_patient(patient_id)

    @require_privilege(Privilege.EDIT_PATIENTS)
    def update_patient(self, patient: Patient) -> None:
        self.gateway.update_patient(patient)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patients_by_identifier(self, identifier: str, include_voided: bool) -> set[Patient]:
        """Patients holding exactly ``identifier``."""
        return self.gateway.get_patients_by_identifier(identifier, include_voided)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patients_by_identifier_pattern(
        self, identifier: str, include_voided: bool
    ) -> set[Patient]:
        """Patients whose identifiers match the site's identifier format with
        ``identifier`` substituted in. Pattern handling is the gateway's."""
        return self.gateway.get_patients_by_identifier_pattern(identifier, include_voided)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patients_by_name(self, name: str, include_voided: bool = False) -> set[Patient]:
        return self.gateway.get_patients_by_name(name, include_voided)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_similar_patients(
        self, name: str, birthyear: int | None, gender: str | None
    ) -> set[Patient]:
        """Possible duplicates to show before registering a new patient."""
        return self.gateway.get_similar_patients(name, birthyear, gender)

    @require_privilege(Privilege.EDIT_PATIENTS)
    def void_patient(self, patient: Patient, reason: str) -> None:
        self.gateway.void_patient(patient, reason)

    @require_privilege(Privilege.EDIT_PATIENTS)
    def unvoid_patient(self, patient: Patient) -> None:
        self.gateway.unvoid_patient(patient)

    @require_privilege(Privilege.DELETE_PATIENTS)
    def delete_patient(self, patient: Patient) -> None:
        """Remove ``patient`` permanently.

        Use void_patient for normal retirement of a record; this is for
        administration and test cleanup only.
        """
        self.gateway.delete_patient(patient)

    @require_privilege(Privilege.VIEW_PATIENTS)
    def find_patients(self, query: str, include_voided: bool = False) -> list[Patient]:
        """Free-text patient search.

        A query containing a digit is treated as an identifier and matched
        against the identifier pattern; anything else is a name search.
        Queries shorter than three characters return an empty list.
        """
        if len(query) < MIN_QUERY_LENGTH:
            return []

        if _DIGIT.search(query):
            logger.debug(f"[Identifier search] Query: {query}")
            patients = self.gateway.get_patients_by_identifier_pattern(query, include_voided)
        else:
            logger.debug(f"[Name search] Query: {query}")
            patients = self.gateway.get_patients_by_name(query, include_voided)

        return list(patients)

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    @require_privilege(Privilege.VIEW_PATIENTS)
    def get_patient_identifiers(
        self, identifier_type: PatientIdentifierType
    ) -> list[PatientIdentifier]:
        return self.gateway.get_patient_identifiers(identifier_type)

    @require_privilege(Privilege.EDIT_PATIENTS)
    def update_patient_identifier(self, identifier: PatientIdentifier) -> None:
        self.gateway.update_patient_identifier(identifier)

    @require_authentication()
    def get_patient_identifier_types(self) -> list[PatientIdentifierType]:
        return self.gateway.get_patient_identifier_types()

    @require_authentication()
    def get_patient_identifier_type(
        self, patient_identifier_type_id: int
    ) -> PatientIdentifierType | None:
        return self.gateway.get_patient_identifier_type(patient_identifier_type_id)

    # ------------------------------------------------------------------
    # Tribes
    # ------------------------------------------------------------------

    @require_authentication()
    def get_tribe(self, tribe_id: int) -> Tribe | None:
        return self.gateway.get_tribe(tribe_id)

    @require_authentication()
    def get_tribes(self) -> list[Tribe]:
        """Non-retired tribes."""
        return self.gateway.get_tribes()

    @require_authentication()
    def find_tribes(self, search: str) -> list[Tribe]:
        return self.gateway.find_tribes(search)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    @require_authentication()
    def get_relationship(self, relationship_id: int) -> Relationship | None:
        return self.gateway.get_relationship(relationship_id)

    @require_privilege(Privilege.MANAGE_RELATIONSHIPS)
    def get_relationships(self) -> list[Relationship]:
        return self.gateway.get_relationships()

    @require_privilege(Privilege.MANAGE_RELATIONSHIPS)
    def get_relationships_by_person(self, person: Person) -> list[Relationship]:
        return self.gateway.get_relationships_by_person(person)

    @require_authentication()
    def get_relationship_types(self) -> list[RelationshipType]:
        return self.gateway.get_relationship_types()

    @require_authentication()
    def get_relationship_type(self, relationship_type_id: int) -> RelationshipType | None:
        return self.gateway.get_relationship_type(relationship_type_id)

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @require_authentication()
    def get_locations(self) -> list[Location]:
        return self.gateway.get_locations()

    @require_authentication()
    def get_location(self, location_id: int) -> Location | None:
        return self.gateway.get_location(location_id)
