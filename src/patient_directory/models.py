"""Pydantic models for the entities the patient directory passes through.

The directory never transforms these records; it hands them to a storage
gateway and returns what the gateway gives back. The models exist so that
gateways and callers agree on field names and types.

Key Components:
    - Person / Patient with embedded PatientIdentifier values
    - Lookup entities: PatientIdentifierType, Tribe, RelationshipType, Location
    - Relationship linking two Person records

Design Principles:
    - Comprehensive field descriptions
    - Internal ids are Optional until the gateway assigns them
    - Patient identity (equality and hashing) is the internal patient id, so
      set-returning searches collapse duplicates
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class Person(BaseModel):
    """Anyone the system knows about; Relationship links two of these."""

    model_config = ConfigDict(validate_assignment=True)

    person_id: int | None = Field(None, description="Internal person identifier")


class PatientIdentifierType(BaseModel):
    """Classification for identifiers (national ID, medical record number, ...)."""

    patient_identifier_type_id: int | None = Field(None, description="Internal identifier")
    name: str = Field(..., description="Display name, e.g. 'Medical Record Number'")
    description: str | None = Field(None, description="Free-text description")
    format: str | None = Field(None, description="Regular expression describing valid values")
    check_digit: bool = Field(False, description="Whether values carry a check digit")


class PatientIdentifier(BaseModel):
    """A (value, type, patient) tuple. Updatable independently of its Patient."""

    model_config = ConfigDict(validate_assignment=True)

    identifier: str = Field(..., description="The identifier value as printed on documents")
    identifier_type: PatientIdentifierType = Field(..., description="Kind of identifier")
    patient_id: int | None = Field(None, description="Owning patient's internal id")
    location_id: int | None = Field(None, description="Location that issued the identifier")
    preferred: bool = Field(False, description="Preferred identifier for display")
    voided: bool = Field(False, description="Soft-delete flag")


class Tribe(BaseModel):
    """Lookup-table entity with a retired flag."""

    tribe_id: int | None = Field(None, description="Internal identifier")
    name: str = Field(..., description="Tribe name")
    retired: bool = Field(False, description="Retired tribes are hidden from listings")


class RelationshipType(BaseModel):
    """Kind of link between two people, e.g. 'Parent/Child'."""

    relationship_type_id: int | None = Field(None, description="Internal identifier")
    name: str = Field(..., description="Relationship type name")
    description: str | None = Field(None, description="Free-text description")


class Relationship(BaseModel):
    """A typed link between two Person records."""

    relationship_id: int | None = Field(None, description="Internal identifier")
    person_id: int = Field(..., description="First person in the relationship")
    relative_id: int = Field(..., description="Second person in the relationship")
    relationship_type: RelationshipType = Field(..., description="Type of the link")
    voided: bool = Field(False, description="Soft-delete flag")


class Location(BaseModel):
    """A facility or place."""

    location_id: int | None = Field(None, description="Internal identifier")
    name: str = Field(..., description="Location name")
    description: str | None = None
    address1: str | None = None
    address2: str | None = None
    city_village: str | None = None
    state_province: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Patient(Person):
    """Identity and demographic record.

    Voiding is a soft delete: ``voided`` is set along with ``void_reason`` and
    ``date_voided``; the record is not removed.

    Equality and hashing follow ``patient_id``. Until an id is assigned the
    hash is identity-based, and it changes once ``create_patient`` fills the id
    in, so add unsaved patients to sets or dict keys only after creating them.
    """

    patient_id: int | None = Field(None, description="Internal patient identifier")
    given_name: str | None = Field(None, description="Given (first) name")
    middle_name: str | None = Field(None, description="Middle name")
    family_name: str | None = Field(None, description="Family (last) name")
    gender: str | None = Field(None, description="'M', 'F' or other site-specific code")
    birthdate: date | None = Field(None, description="Date of birth")
    birthdate_estimated: bool = Field(False, description="Whether birthdate is an estimate")
    tribe: Tribe | None = Field(None, description="Tribe, if recorded")
    identifiers: list[PatientIdentifier] = Field(
        default_factory=list, description="Identifiers issued to this patient"
    )
    voided: bool = Field(False, description="Soft-delete flag")
    void_reason: str | None = Field(None, description="Why the patient was voided")
    date_voided: datetime | None = Field(None, description="When the patient was voided")

    @property
    def full_name(self) -> str:
        parts = (self.given_name, self.middle_name, self.family_name)
        return " ".join(part for part in parts if part)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Patient):
            return NotImplemented
        if self.patient_id is None or other.patient_id is None:
            return self is other
        return self.patient_id == other.patient_id

    def __hash__(self) -> int:
        if self.patient_id is None:
            return id(self)
        return hash(("patient", self.patient_id))

    def __str__(self) -> str:
        return f"Patient#{self.patient_id}"
