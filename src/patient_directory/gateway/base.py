"""Storage gateway contract.

The directory decides *whether* a caller may do something; a storage gateway
decides *how* it is done. Gateways own all persisted state, assign internal
ids, run searches and apply whatever transaction discipline the backing
store offers.

Contract:
    - Not-found conditions return ``None`` or an empty collection, never raise
    - Persistence failures raise (preferably a ``DatabaseError`` subclass)
    - Set-returning searches return ``set[Patient]``; order is meaningless
"""

from abc import ABC, abstractmethod

from ..models import (
    Location,
    Patient,
    PatientIdentifier,
    PatientIdentifierType,
    Person,
    Relationship,
    RelationshipType,
    Tribe,
)


class StorageGateway(ABC):
    """Abstract persistence contract used by PatientDirectoryService."""

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    @abstractmethod
    def create_patient(self, patient: Patient) -> None:
        """Persist a new patient, assigning ``patient_id`` if unset."""

    @abstractmethod
    def get_patient(self, patient_id: int) -> Patient | None:
        """Return the patient with ``patient_id`` or None."""

    @abstractmethod
    def update_patient(self, patient: Patient) -> None:
        """Overwrite the stored patient with the same ``patient_id``."""

    @abstractmethod
    def get_patients_by_identifier(self, identifier: str, include_voided: bool) -> set[Patient]:
        """Patients holding exactly ``identifier``."""

    @abstractmethod
    def get_patients_by_identifier_pattern(
        self, identifier: str, include_voided: bool
    ) -> set[Patient]:
        """Patients whose identifiers match the configured identifier pattern
        with ``identifier`` substituted in."""

    @abstractmethod
    def get_patients_by_name(self, name: str, include_voided: bool) -> set[Patient]:
        """Patients whose names match ``name``."""

    @abstractmethod
    def get_similar_patients(
        self, name: str, birthyear: int | None, gender: str | None
    ) -> set[Patient]:
        """Possible duplicates of a patient about to be registered."""

    @abstractmethod
    def void_patient(self, patient: Patient, reason: str) -> None:
        """Soft-delete ``patient`` with ``reason``."""

    @abstractmethod
    def unvoid_patient(self, patient: Patient) -> None:
        """Reverse a previous void."""

    @abstractmethod
    def delete_patient(self, patient: Patient) -> None:
        """Remove ``patient`` permanently."""

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    @abstractmethod
    def get_patient_identifiers(
        self, identifier_type: PatientIdentifierType
    ) -> list[PatientIdentifier]:
        """All identifiers of ``identifier_type``."""

    @abstractmethod
    def update_patient_identifier(self, identifier: PatientIdentifier) -> None:
        """Persist changes to a single identifier."""

    @abstractmethod
    def get_patient_identifier_types(self) -> list[PatientIdentifierType]: ...

    @abstractmethod
    def get_patient_identifier_type(
        self, patient_identifier_type_id: int
    ) -> PatientIdentifierType | None: ...

    # ------------------------------------------------------------------
    # Tribes
    # ------------------------------------------------------------------

    @abstractmethod
    def get_tribe(self, tribe_id: int) -> Tribe | None: ...

    @abstractmethod
    def get_tribes(self) -> list[Tribe]:
        """Non-retired tribes."""

    @abstractmethod
    def find_tribes(self, search: str) -> list[Tribe]:
        """Non-retired tribes whose name contains ``search``."""

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    @abstractmethod
    def get_relationship(self, relationship_id: int) -> Relationship | None: ...

    @abstractmethod
    def get_relationships(self) -> list[Relationship]:
        """Non-voided relationships."""

    @abstractmethod
    def get_relationships_by_person(self, person: Person) -> list[Relationship]:
        """Relationships with ``person`` on either side."""

    @abstractmethod
    def get_relationship_types(self) -> list[RelationshipType]: ...

    @abstractmethod
    def get_relationship_type(self, relationship_type_id: int) -> RelationshipType | None: ...

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @abstractmethod
    def get_locations(self) -> list[Location]: ...

    @abstractmethod
    def get_location(self, location_id: int) -> Location | None: ...
