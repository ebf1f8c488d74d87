"""Paginated Patient search with an optional "has encounters" filter."""
import logging
from typing import Iterable, List, Optional

from fhir_patients.client import FhirClient
from fhir_patients.schemas import Bundle, Encounter, Patient

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5


def has_encounters(client: FhirClient, patient: Patient) -> bool:
    """True if the server holds at least one Encounter for `patient`."""
    # _summary=count asks for the total only, no entries.
    bundle = client.search("Encounter", [f"patient={patient.reference}", "_summary=count"])
    if bundle is None:
        return False
    if bundle.total is not None:
        return bundle.total > 0
    # Servers that ignore _summary may omit total; count real Encounter entries,
    # not included resources or OperationOutcome entries.
    encounters = [
        Encounter.model_validate(entry.resource)
        for entry in bundle.entry
        if entry.resource and entry.resource.get("resourceType") == "Encounter"
    ]
    return len(encounters) > 0


class PatientSearchTraverser:
    """
    Walks the pages of a Patient search, collecting up to `max_results` matches.

    Only one page is held at a time. Pages are fetched strictly in order and
    nothing is fetched past the page on which the limit is reached. Any
    exception from the client aborts the walk and propagates.
    """

    def __init__(self, client: FhirClient):
        self.client = client

    def search(
        self,
        criteria: Optional[Iterable[str]] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        require_related_encounter: bool = False,
    ) -> List[Patient]:
        """
        Args:
            criteria: 'key=value' filters passed to the server unmodified.
            max_results: upper bound on returned patients (>= 1).
            require_related_encounter: keep only patients with at least one Encounter.

        Returns:
            Matching patients in server order, at most `max_results` of them.
        """
        if max_results < 1:
            raise ValueError(f"max_results must be at least 1, got {max_results}.")

        page: Optional[Bundle] = self.client.search("Patient", criteria)
        if page is not None and page.total is not None:
            logger.info("Total number of patients: %s", page.total)

        patients: List[Patient] = []
        while page is not None:
            logger.info("Entry count: %s", len(page.entry))
            for entry in page.entry:
                if not entry.resource or entry.resource.get("resourceType") != "Patient":
                    continue
                patient = Patient.model_validate(entry.resource)
                if require_related_encounter and not has_encounters(self.client, patient):
                    continue
                patients.append(patient)
                logger.info("- %s: %s", len(patients), entry.full_url or patient.reference)
                if len(patients) >= max_results:
                    break

            if len(patients) >= max_results or page.next_link is None:
                break
            page = self.client.continue_search(page)

        return patients


def get_patients(
    client: FhirClient,
    criteria: Optional[Iterable[str]] = None,
    max_results: int = DEFAULT_MAX_RESULTS,
    only_with_encounters: bool = False,
) -> List[Patient]:
    """Shorthand for `PatientSearchTraverser(client).search(...)`."""
    return PatientSearchTraverser(client).search(criteria, max_results, only_with_encounters)
