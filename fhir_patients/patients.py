"""Single-call Patient operations: create, read, update, delete, print."""
import logging
from datetime import date
from typing import List, Optional, Sequence, Union

from fhir_patients.client import FhirClient
from fhir_patients.schemas import (
    AdministrativeGender,
    ContactPoint,
    ContactPointSystem,
    ContactPointUse,
    HumanName,
    Patient,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTACT = ContactPoint(system=ContactPointSystem.PHONE, use=ContactPointUse.MOBILE, value="1234567890")


def create_patient(
    client: FhirClient,
    given_names: Sequence[str],
    family_name: str,
    birth_date: Union[date, str],
) -> Optional[Patient]:
    """
    Create a Patient with one name and a birth date.

    Returns:
        The server's representation (with its assigned id), or None if the
        server did not send one back.
    """
    logger.info("Creating patient")
    patient = Patient(
        name=[HumanName(family=family_name, given=list(given_names))],
        birth_date=birth_date,
    )
    created = client.create(patient.to_fhir())
    if created is None:
        return None
    created_patient = Patient.model_validate(created)
    logger.info("Created patient: %s", display_name(created_patient))
    return created_patient


def get_patient(client: FhirClient, patient_id: str) -> Optional[Patient]:
    """Fetch a Patient by id; None if the server has no such patient."""
    logger.info("Getting patient %s", patient_id)
    resource = client.read("Patient", patient_id)
    return Patient.model_validate(resource) if resource is not None else None


def update_patient(
    client: FhirClient,
    patient: Patient,
    contact: Optional[ContactPoint] = None,
    gender: AdministrativeGender = AdministrativeGender.UNKNOWN,
) -> Optional[Patient]:
    """
    Append a contact point and set the gender, then PUT the whole resource.

    `patient` is modified in place. Returns the server's updated representation.
    """
    if not patient.id:
        raise ValueError("Cannot update a patient that has no id.")
    logger.info("Updating patient %s", patient.id)
    patient.telecom.append((contact or DEFAULT_CONTACT).model_copy())
    patient.gender = gender
    updated = client.update(patient.to_fhir())
    return Patient.model_validate(updated) if updated is not None else None


def delete_patient(client: FhirClient, patient: Patient, cascade: bool = True) -> None:
    logger.info("Deleting patient %s", patient.id)
    client.delete(patient.reference, cascade=cascade)


def delete_all_but_first(client: FhirClient, patients: List[Patient]) -> int:
    """Delete every patient after the first; returns how many were deleted."""
    logger.info("Number of patients before deleting: %s", len(patients))
    for patient in patients[1:]:
        delete_patient(client, patient)
    return max(len(patients) - 1, 0)


def display_name(patient: Patient) -> str:
    if not patient.name:
        return ""
    name = patient.name[0]
    first_given = name.given[0] if name.given else ""
    return " ".join(part for part in (first_given, name.family) if part)


def format_patient(patient: Patient) -> str:
    """One-line summary; sections for absent elements are left out."""
    patient_info = f"Patient: {patient.id}"
    if patient.name:
        patient_info += f" Name: {display_name(patient)}"
    if patient.birth_date:
        patient_info += f" Birthdate: {patient.birth_date}"
    if patient.gender is not None:
        patient_info += f" Gender: {patient.gender.value}"
    if patient.telecom:
        telecom = patient.telecom[0]
        system = telecom.system.value if telecom.system else None
        use = telecom.use.value if telecom.use else None
        patient_info += f" System: {system} Use: {use} Value: {telecom.value}"
    return patient_info


def print_patient(patient: Optional[Patient]) -> None:
    if patient is None:
        return
    print(format_patient(patient))
