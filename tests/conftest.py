"""Pytest configuration and shared fixtures for the patient directory tests.

TESTING STRATEGY:
=================

The directory is a guard-and-forward facade, so most of its behaviour can be
pinned down without a database:

1. **Unit Tests (tests/unit)**: Fast, isolated, no MongoDB
   - Service privilege checks against a MagicMock(spec=StorageGateway)
   - Exact forwarding (arguments in, result out)
   - Mongo gateway query construction against a mocked pymongo Database
   - Security, settings, exceptions, logging

2. **Integration Tests (tests/integration)**: Real MongoDB, opt-in with
   ``pytest -m integration`` (none ship yet)

Fixture Design Principles:
--------------------------
1. **Explicit contexts**: every test states which privileges the caller has
2. **Mocks with spec**: a misspelled gateway method fails loudly
3. **In-memory gateway**: for state transitions (void/unvoid) where a mock
   would only echo what the test told it

Example Usage:
--------------
```python
def test_lookup(service_factory, context_with):
    service, gateway = service_factory(context_with(Privilege.VIEW_PATIENTS))
    service.get_patient(7)
    gateway.get_patient.assert_called_once_with(7)
```
"""

from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.patient_directory.gateway.base import StorageGateway
from src.patient_directory.models import (
    Location,
    Patient,
    PatientIdentifier,
    PatientIdentifierType,
    Person,
    Relationship,
    RelationshipType,
    Tribe,
)
from src.patient_directory.security.authentication import (
    ROLE_PRIVILEGES,
    Privilege,
    SecurityContext,
    UserRole,
)
from src.patient_directory.service import PatientDirectoryService

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers.

    ```bash
    pytest -m unit              # Only unit tests (fast)
    pytest -m integration       # Only tests needing MongoDB
    ```
    """
    config.addinivalue_line("markers", "unit: Fast unit tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: Integration tests with real dependencies")


def pytest_collection_modifyitems(config, items):
    """Mark tests by directory: tests/unit -> unit, tests/integration -> integration."""
    for item in items:
        test_path = Path(item.fspath)

        if "unit" in test_path.parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# AUTH CONTEXT FIXTURES
# =============================================================================


@pytest.fixture
def context_with() -> Callable[..., SecurityContext]:
    """Factory: an authenticated context holding exactly the given privileges.

    Example:
    --------
    >>> ctx = context_with(Privilege.VIEW_PATIENTS)
    >>> ctx.has_privilege(Privilege.EDIT_PATIENTS)
    False
    """

    def _make(*privileges: Privilege) -> SecurityContext:
        return SecurityContext(
            user_id="tester",
            role=UserRole.AUTHENTICATED,
            session_id="sess-0123456789abcdef",
            ip_address="10.0.0.5",
            privileges=list(privileges),
        )

    return _make


@pytest.fixture
def anonymous_context() -> SecurityContext:
    """A caller that never logged in."""
    return SecurityContext.anonymous()


@pytest.fixture
def authenticated_context(context_with) -> SecurityContext:
    """Logged in, no privileges."""
    return context_with()


@pytest.fixture
def superuser_context() -> SecurityContext:
    return SecurityContext(
        user_id="admin",
        role=UserRole.SYSTEM_DEVELOPER,
        session_id="sess-admin-0000000000",
        privileges=sorted(ROLE_PRIVILEGES[UserRole.SYSTEM_DEVELOPER], key=lambda p: p.value),
    )


@pytest.fixture
def registrar_context() -> SecurityContext:
    return SecurityContext(
        user_id="registrar-1",
        role=UserRole.REGISTRAR,
        session_id="sess-registrar-000000",
        privileges=list(ROLE_PRIVILEGES[UserRole.REGISTRAR]),
    )


# =============================================================================
# GATEWAY FIXTURES
# =============================================================================


@pytest.fixture
def mock_gateway() -> MagicMock:
    """A MagicMock constrained to the StorageGateway interface."""
    return MagicMock(spec=StorageGateway)


@pytest.fixture
def service_factory(mock_gateway) -> Callable:
    """Factory: (service, gateway) for a given auth context.

    Every service built by one factory shares the test's ``mock_gateway``.
    """

    def _make(context, audit_logger=None) -> tuple[PatientDirectoryService, MagicMock]:
        return PatientDirectoryService(context, mock_gateway, audit_logger=audit_logger), mock_gateway

    return _make


class InMemoryStorageGateway(StorageGateway):
    """Dictionary-backed gateway with the same observable behaviour as the
    Mongo gateway for patients; lookup tables are plain lists."""

    def __init__(self):
        self.patients: dict[int, Patient] = {}
        self.identifier_types: list[PatientIdentifierType] = []
        self.tribes: list[Tribe] = []
        self.relationships: list[Relationship] = []
        self.relationship_types: list[RelationshipType] = []
        self.locations: list[Location] = []
        self._next_id = 1

    def _visible(self, include_voided: bool) -> list[Patient]:
        return [p for p in self.patients.values() if include_voided or not p.voided]

    def create_patient(self, patient):
        if patient.patient_id is None:
            patient.patient_id = self._next_id
        self._next_id = max(self._next_id, patient.patient_id) + 1
        self.patients[patient.patient_id] = patient.model_copy(deep=True)

    def get_patient(self, patient_id):
        stored = self.patients.get(patient_id)
        return stored.model_copy(deep=True) if stored else None

    def update_patient(self, patient):
        self.patients[patient.patient_id] = patient.model_copy(deep=True)

    def get_patients_by_identifier(self, identifier, include_voided):
        return {
            p
            for p in self._visible(include_voided)
            if any(pi.identifier == identifier for pi in p.identifiers)
        }

    def get_patients_by_identifier_pattern(self, identifier, include_voided):
        return {
            p
            for p in self._visible(include_voided)
            if any(pi.identifier.lstrip("0").startswith(identifier) for pi in p.identifiers)
        }

    def get_patients_by_name(self, name, include_voided):
        tokens = [token.lower() for token in name.split()]
        if not tokens:
            return set()

        def matches(patient):
            parts = [
                (part or "").lower()
                for part in (patient.given_name, patient.middle_name, patient.family_name)
            ]
            return all(any(part.startswith(token) for part in parts) for token in tokens)

        return {p for p in self._visible(include_voided) if matches(p)}

    def get_similar_patients(self, name, birthyear, gender):
        candidates = self.get_patients_by_name(name, include_voided=False)
        return {
            p
            for p in candidates
            if (not gender or p.gender == gender)
            and (
                birthyear is None
                or p.birthdate is None
                or abs(p.birthdate.year - birthyear) <= 1
            )
        }

    def void_patient(self, patient, reason):
        patient.voided = True
        patient.void_reason = reason
        patient.date_voided = datetime.utcnow()
        self.update_patient(patient)

    def unvoid_patient(self, patient):
        patient.voided = False
        patient.void_reason = None
        patient.date_voided = None
        self.update_patient(patient)

    def delete_patient(self, patient):
        self.patients.pop(patient.patient_id, None)

    def get_patient_identifiers(self, identifier_type):
        return [
            pi
            for p in self.patients.values()
            for pi in p.identifiers
            if pi.identifier_type == identifier_type
        ]

    def update_patient_identifier(self, identifier):
        patient = self.patients[identifier.patient_id]
        patient.identifiers = [
            identifier if pi.identifier == identifier.identifier else pi
            for pi in patient.identifiers
        ]

    def get_patient_identifier_types(self):
        return list(self.identifier_types)

    def get_patient_identifier_type(self, patient_identifier_type_id):
        return next(
            (
                t
                for t in self.identifier_types
                if t.patient_identifier_type_id == patient_identifier_type_id
            ),
            None,
        )

    def get_tribe(self, tribe_id):
        return next((t for t in self.tribes if t.tribe_id == tribe_id), None)

    def get_tribes(self):
        return [t for t in self.tribes if not t.retired]

    def find_tribes(self, search):
        return [t for t in self.get_tribes() if search.lower() in t.name.lower()]

    def get_relationship(self, relationship_id):
        return next((r for r in self.relationships if r.relationship_id == relationship_id), None)

    def get_relationships(self):
        return [r for r in self.relationships if not r.voided]

    def get_relationships_by_person(self, person):
        return [
            r
            for r in self.get_relationships()
            if person.person_id in (r.person_id, r.relative_id)
        ]

    def get_relationship_types(self):
        return list(self.relationship_types)

    def get_relationship_type(self, relationship_type_id):
        return next(
            (t for t in self.relationship_types if t.relationship_type_id == relationship_type_id),
            None,
        )

    def get_locations(self):
        return list(self.locations)

    def get_location(self, location_id):
        return next((loc for loc in self.locations if loc.location_id == location_id), None)


@pytest.fixture
def memory_gateway() -> InMemoryStorageGateway:
    return InMemoryStorageGateway()


# =============================================================================
# TEST DATA FIXTURES
# =============================================================================


@pytest.fixture
def mrn_type() -> PatientIdentifierType:
    """Medical record number identifier type with a check digit."""
    return PatientIdentifierType(
        patient_identifier_type_id=1,
        name="Medical Record Number",
        format=r"^\d+-\d$",
        check_digit=True,
    )


@pytest.fixture
def sample_patient(mrn_type) -> Patient:
    """A registered patient with one identifier.

    Returns:
    --------
    Patient 1 "John Robert Doe", born 1980-01-15, identifier "1234-5"
    """
    return Patient(
        patient_id=1,
        person_id=1,
        given_name="John",
        middle_name="Robert",
        family_name="Doe",
        gender="M",
        birthdate=date(1980, 1, 15),
        identifiers=[PatientIdentifier(identifier="1234-5", identifier_type=mrn_type, patient_id=1)],
    )


@pytest.fixture
def sample_patients_list(mrn_type) -> list[Patient]:
    """Patients with overlapping names and years for search tests."""
    return [
        Patient(
            patient_id=10,
            given_name="Jane",
            family_name="Smith",
            gender="F",
            birthdate=date(1975, 5, 20),
            identifiers=[
                PatientIdentifier(identifier="0077-3", identifier_type=mrn_type, patient_id=10)
            ],
        ),
        Patient(
            patient_id=11,
            given_name="John",
            family_name="Smithers",
            gender="M",
            birthdate=date(1976, 2, 1),
        ),
        Patient(patient_id=12, given_name="Mary", family_name="Jones", gender="F"),
    ]


@pytest.fixture
def sample_person() -> Person:
    return Person(person_id=1)


@pytest.fixture
def sample_relationship_type() -> RelationshipType:
    return RelationshipType(relationship_type_id=1, name="Parent/Child")


@pytest.fixture
def sample_relationship(sample_relationship_type) -> Relationship:
    return Relationship(
        relationship_id=5,
        person_id=1,
        relative_id=2,
        relationship_type=sample_relationship_type,
    )


@pytest.fixture
def sample_tribe() -> Tribe:
    return Tribe(tribe_id=3, name="Luo")


@pytest.fixture
def sample_location() -> Location:
    return Location(location_id=2, name="Eldoret Clinic", country="Kenya")
