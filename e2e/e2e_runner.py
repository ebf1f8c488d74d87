"""
End-to-end checks for the FHIR patient tutorial against a live FHIR server.

Usage:
  1. Point FHIR_SERVER_URL (or FHIR_SERVER) at a writable test server, e.g. the Local HAPI image.
  2. Run this script: python e2e/e2e_runner.py
  3. The script will exit 0 if all checks pass, nonzero otherwise.

Every patient created here is deleted again at the end.
"""
import sys
import os
import uuid
from datetime import date

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from fhir_patients.client import FhirClient
from fhir_patients.config import load_settings
from fhir_patients.patients import create_patient, delete_patient, get_patient, update_patient
from fhir_patients.search import get_patients

# A family name unlikely to collide with anything already on a shared server.
FAMILY_NAME = f"E2E{uuid.uuid4().hex[:8]}"
BIRTH_DATE = date(1990, 1, 1)

failures = 0
created = []


def fail(message):
    global failures
    print("\033[91m**FAIL**\033[0m")
    print(f"  FAIL: {message}")
    failures += 1


def test_create_read_round_trip(client):
    print("Test: Create Patient, then read it back...")
    try:
        patient = create_patient(client, ["Coody"], FAMILY_NAME, BIRTH_DATE)
        if patient is None or not patient.id:
            fail("server did not return the created patient")
            return
        created.append(patient)
        fetched = get_patient(client, patient.id)
        assert fetched is not None, "created patient not found"
        assert fetched.name[0].family == FAMILY_NAME
        assert fetched.name[0].given == ["Coody"]
        assert fetched.birth_date == BIRTH_DATE.isoformat()
        print("  PASS")
    except requests.HTTPError as e:
        fail(f"HTTP error: {e}")
        if e.response is not None:
            print(f"  Raw response: {e.response.text}")
    except Exception as e:
        fail(f"Unexpected error: {e}")


def test_search_respects_max_results(client):
    print("Test: Search with max_results...")
    try:
        for given in ("Second", "Third"):
            extra = create_patient(client, [given], FAMILY_NAME, BIRTH_DATE)
            if extra is not None:
                created.append(extra)
        patients = get_patients(client, [f"family={FAMILY_NAME}"], max_results=2)
        assert len(patients) == 2, f"expected 2 patients, got {len(patients)}"
        assert all(p.name[0].family == FAMILY_NAME for p in patients)
        print("  PASS")
    except Exception as e:
        fail(f"Unexpected error: {e}")


def test_update_patient(client):
    print("Test: Update Patient gender and telecom...")
    if not created:
        fail("no patient to update")
        return
    try:
        patient = get_patient(client, created[0].id)
        updated = update_patient(client, patient)
        assert updated is not None
        assert updated.gender.value == "unknown"
        assert updated.telecom[-1].value == "1234567890"
        print("  PASS")
    except Exception as e:
        fail(f"Unexpected error: {e}")


def test_read_nonexistent_patient(client):
    print("Test: Read non-existent Patient...")
    try:
        assert get_patient(client, "doesnotexist12345") is None
        print("  PASS")
    except Exception as e:
        fail(f"Unexpected error: {e}")


def cleanup(client):
    for patient in created:
        try:
            delete_patient(client, patient)
        except requests.RequestException as e:
            print(f"  Could not delete {patient.reference}: {e}")


if __name__ == "__main__":
    settings = load_settings()
    print(f"Running against {settings.server_url}")
    with FhirClient(settings.server_url, timeout=settings.timeout) as client:
        try:
            test_create_read_round_trip(client)
            test_search_respects_max_results(client)
            test_update_patient(client)
            test_read_nonexistent_patient(client)
        finally:
            cleanup(client)
    if failures:
        print(f"\n{failures} test(s) failed.")
        sys.exit(1)
    print("\nAll E2E tests passed!")
    sys.exit(0)
