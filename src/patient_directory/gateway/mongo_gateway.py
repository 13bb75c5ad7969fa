"""MongoDB implementation of the storage gateway.

Collections:
    patients                  Patient documents, identifiers embedded, ``_id`` = patient_id
    patient_identifier_types  PatientIdentifierType documents
    tribes                    Tribe documents
    relationships             Relationship documents, relationship type embedded
    relationship_types        RelationshipType documents
    locations                 Location documents
    counters                  ``{"_id": <sequence>, "seq": <int>}`` id sequences

Documents are the models' JSON dumps, so dates are ISO strings
(``birthdate`` "1980-04-02"). Birth-year filters rely on that.
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any, TypeVar

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from src.config.settings import IDENTIFIER_SEARCH_TOKEN, settings

from ..exceptions import ValidationError, convert_to_directory_exception
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
from .base import StorageGateway

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

PATIENTS = "patients"
IDENTIFIER_TYPES = "patient_identifier_types"
TRIBES = "tribes"
RELATIONSHIPS = "relationships"
RELATIONSHIP_TYPES = "relationship_types"
LOCATIONS = "locations"
COUNTERS = "counters"

NAME_FIELDS = ("given_name", "middle_name", "family_name")
NOT_VOIDED = {"voided": {"$ne": True}}
NOT_RETIRED = {"retired": {"$ne": True}}


def _translate_errors(func: F) -> F:
    """Re-raise pymongo failures as DatabaseError subclasses."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except PyMongoError as e:
            error = convert_to_directory_exception(
                e,
                default_message=f"{func.__name__} failed",
                context={"operation": func.__name__},
            )
            logger.error(f"MongoDB error in {func.__name__}: {error}")
            raise error from e

    return wrapper  # type: ignore


def _strip_id(document: dict[str, Any]) -> dict[str, Any]:
    document = dict(document)
    document.pop("_id", None)
    return document


def _name_clauses(name: str) -> list[dict[str, Any]]:
    """One ``$or`` per whitespace token: the token prefixes some name part."""
    clauses = []
    for token in name.split():
        prefix = {"$regex": f"^{re.escape(token)}", "$options": "i"}
        clauses.append({"$or": [{field: prefix} for field in NAME_FIELDS]})
    return clauses


class MongoStorageGateway(StorageGateway):
    """StorageGateway backed by a pymongo Database.

    Args:
        database: Database handle, usually ``ConnectionManager.get_database()``
        identifier_regex: Identifier pattern template containing ``@SEARCH@``
    """

    def __init__(self, database: Database, identifier_regex: str | None = None):
        self.db = database
        self.identifier_regex = identifier_regex or settings.patient_identifier_regex
        if IDENTIFIER_SEARCH_TOKEN not in self.identifier_regex:
            raise ValidationError(
                message=f"Identifier regex must contain {IDENTIFIER_SEARCH_TOKEN}",
                details={"identifier_regex": self.identifier_regex},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _next_id(self, sequence: str) -> int:
        counter = self.db[COUNTERS].find_one_and_update(
            {"_id": sequence},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    def _advance_counter(self, sequence: str, value: int) -> None:
        """Keep the sequence at or above an id the caller chose."""
        self.db[COUNTERS].update_one({"_id": sequence}, {"$max": {"seq": value}}, upsert=True)

    @staticmethod
    def _patient_document(patient: Patient) -> dict[str, Any]:
        document = patient.model_dump(mode="json")
        document["_id"] = patient.patient_id
        return document

    def _find_patients(self, query: dict[str, Any]) -> set[Patient]:
        return {Patient.model_validate(_strip_id(doc)) for doc in self.db[PATIENTS].find(query)}

    @staticmethod
    def _require_patient_id(patient: Patient, operation: str) -> int:
        if patient.patient_id is None:
            raise ValidationError(
                message=f"Cannot {operation} a patient without patient_id",
                details={"operation": operation},
            )
        return patient.patient_id

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    @_translate_errors
    def create_patient(self, patient: Patient) -> None:
        patient_id = patient.patient_id
        if patient_id is None:
            patient_id = self._next_id(PATIENTS)
        else:
            self._advance_counter(PATIENTS, patient_id)
        person_id = patient.person_id if patient.person_id is not None else patient_id

        stored = patient.model_copy(update={"patient_id": patient_id, "person_id": person_id})
        self.db[PATIENTS].insert_one(self._patient_document(stored))

        patient.patient_id = patient_id
        patient.person_id = person_id
        logger.debug(f"Inserted patient {patient_id}")

    @_translate_errors
    def get_patient(self, patient_id: int) -> Patient | None:
        document = self.db[PATIENTS].find_one({"_id": patient_id})
        if document is None:
            return None
        return Patient.model_validate(_strip_id(document))

    @_translate_errors
    def update_patient(self, patient: Patient) -> None:
        patient_id = self._require_patient_id(patient, "update")
        result = self.db[PATIENTS].replace_one({"_id": patient_id}, self._patient_document(patient))
        if result.matched_count == 0:
            logger.warning(f"update_patient matched no document for patient {patient_id}")

    @_translate_errors
    def get_patients_by_identifier(self, identifier: str, include_voided: bool) -> set[Patient]:
        query: dict[str, Any] = {"identifiers.identifier": identifier}
        if not include_voided:
            query.update(NOT_VOIDED)
        return self._find_patients(query)

    @_translate_errors
    def get_patients_by_identifier_pattern(
        self, identifier: str, include_voided: bool
    ) -> set[Patient]:
        pattern = self.identifier_regex.replace(IDENTIFIER_SEARCH_TOKEN, re.escape(identifier))
        query: dict[str, Any] = {"identifiers.identifier": {"$regex": pattern}}
        if not include_voided:
            query.update(NOT_VOIDED)
        return self._find_patients(query)

    @_translate_errors
    def get_patients_by_name(self, name: str, include_voided: bool) -> set[Patient]:
        clauses = _name_clauses(name)
        if not clauses:
            return set()
        if not include_voided:
            clauses.append(NOT_VOIDED)
        return self._find_patients({"$and": clauses})

    @_translate_errors
    def get_similar_patients(
        self, name: str, birthyear: int | None, gender: str | None
    ) -> set[Patient]:
        clauses = _name_clauses(name)
        if not clauses:
            return set()
        clauses.append(NOT_VOIDED)
        if gender:
            clauses.append({"gender": gender})
        if birthyear is not None:
            years = "|".join(str(year) for year in (birthyear - 1, birthyear, birthyear + 1))
            clauses.append(
                {"$or": [{"birthdate": {"$regex": f"^({years})-"}}, {"birthdate": None}]}
            )
        return self._find_patients({"$and": clauses})

    @_translate_errors
    def void_patient(self, patient: Patient, reason: str) -> None:
        self._persist_void_state(
            patient, voided=True, void_reason=reason, date_voided=datetime.utcnow()
        )
        logger.info(f"Voided patient {patient.patient_id}: {reason}")

    @_translate_errors
    def unvoid_patient(self, patient: Patient) -> None:
        self._persist_void_state(patient, voided=False, void_reason=None, date_voided=None)
        logger.info(f"Unvoided patient {patient.patient_id}")

    def _persist_void_state(self, patient: Patient, **fields: Any) -> None:
        """Write the void fields, then copy them onto the caller's patient."""
        self._require_patient_id(patient, "void" if fields["voided"] else "unvoid")
        self.update_patient(patient.model_copy(update=fields))
        for name, value in fields.items():
            setattr(patient, name, value)

    @_translate_errors
    def delete_patient(self, patient: Patient) -> None:
        patient_id = self._require_patient_id(patient, "delete")
        self.db[PATIENTS].delete_one({"_id": patient_id})
        logger.info(f"Deleted patient {patient_id}")

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    @_translate_errors
    def get_patient_identifiers(
        self, identifier_type: PatientIdentifierType
    ) -> list[PatientIdentifier]:
        type_id = identifier_type.patient_identifier_type_id
        field = "identifiers.identifier_type.patient_identifier_type_id"
        identifiers = []
        for document in self.db[PATIENTS].find({field: type_id}, {"identifiers": 1}):
            for raw in document.get("identifiers", []):
                if raw["identifier_type"].get("patient_identifier_type_id") == type_id:
                    identifiers.append(PatientIdentifier.model_validate(raw))
        return identifiers

    @_translate_errors
    def update_patient_identifier(self, identifier: PatientIdentifier) -> None:
        if identifier.patient_id is None:
            raise ValidationError(
                message="Cannot update an identifier without patient_id",
                details={"identifier": identifier.identifier},
            )
        type_id = identifier.identifier_type.patient_identifier_type_id
        result = self.db[PATIENTS].update_one(
            {
                "_id": identifier.patient_id,
                "identifiers": {
                    "$elemMatch": {
                        "identifier": identifier.identifier,
                        "identifier_type.patient_identifier_type_id": type_id,
                    }
                },
            },
            {"$set": {"identifiers.$": identifier.model_dump(mode="json")}},
        )
        if result.matched_count == 0:
            logger.warning(
                f"update_patient_identifier matched nothing for patient {identifier.patient_id}"
            )

    @_translate_errors
    def get_patient_identifier_types(self) -> list[PatientIdentifierType]:
        return [
            PatientIdentifierType.model_validate(_strip_id(doc))
            for doc in self.db[IDENTIFIER_TYPES].find({})
        ]

    @_translate_errors
    def get_patient_identifier_type(
        self, patient_identifier_type_id: int
    ) -> PatientIdentifierType | None:
        document = self.db[IDENTIFIER_TYPES].find_one(
            {"patient_identifier_type_id": patient_identifier_type_id}
        )
        return PatientIdentifierType.model_validate(_strip_id(document)) if document else None

    # ------------------------------------------------------------------
    # Tribes
    # ------------------------------------------------------------------

    @_translate_errors
    def get_tribe(self, tribe_id: int) -> Tribe | None:
        document = self.db[TRIBES].find_one({"tribe_id": tribe_id})
        return Tribe.model_validate(_strip_id(document)) if document else None

    @_translate_errors
    def get_tribes(self) -> list[Tribe]:
        return [Tribe.model_validate(_strip_id(doc)) for doc in self.db[TRIBES].find(NOT_RETIRED)]

    @_translate_errors
    def find_tribes(self, search: str) -> list[Tribe]:
        query = {**NOT_RETIRED, "name": {"$regex": re.escape(search), "$options": "i"}}
        return [Tribe.model_validate(_strip_id(doc)) for doc in self.db[TRIBES].find(query)]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    @_translate_errors
    def get_relationship(self, relationship_id: int) -> Relationship | None:
        document = self.db[RELATIONSHIPS].find_one({"relationship_id": relationship_id})
        return Relationship.model_validate(_strip_id(document)) if document else None

    @_translate_errors
    def get_relationships(self) -> list[Relationship]:
        return [
            Relationship.model_validate(_strip_id(doc))
            for doc in self.db[RELATIONSHIPS].find(NOT_VOIDED)
        ]

    @_translate_errors
    def get_relationships_by_person(self, person: Person) -> list[Relationship]:
        person_id = person.person_id
        query = {
            **NOT_VOIDED,
            "$or": [{"person_id": person_id}, {"relative_id": person_id}],
        }
        return [
            Relationship.model_validate(_strip_id(doc)) for doc in self.db[RELATIONSHIPS].find(query)
        ]

    @_translate_errors
    def get_relationship_types(self) -> list[RelationshipType]:
        return [
            RelationshipType.model_validate(_strip_id(doc))
            for doc in self.db[RELATIONSHIP_TYPES].find({})
        ]

    @_translate_errors
    def get_relationship_type(self, relationship_type_id: int) -> RelationshipType | None:
        document = self.db[RELATIONSHIP_TYPES].find_one(
            {"relationship_type_id": relationship_type_id}
        )
        return RelationshipType.model_validate(_strip_id(document)) if document else None

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @_translate_errors
    def get_locations(self) -> list[Location]:
        return [Location.model_validate(_strip_id(doc)) for doc in self.db[LOCATIONS].find({})]

    @_translate_errors
    def get_location(self, location_id: int) -> Location | None:
        document = self.db[LOCATIONS].find_one({"location_id": location_id})
        return Location.model_validate(_strip_id(document)) if document else None
