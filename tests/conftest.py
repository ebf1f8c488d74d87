import copy
import json

import pytest
import requests

from fhir_patients.client import FhirClient, parse_criteria
from fhir_patients.schemas import Bundle

BASE_URL = "http://fhir.test/r4"


class MockResponse:
    def __init__(self, json_data=None, status_code=200, url=BASE_URL):
        self._json = json_data
        self.status_code = status_code
        self.url = url
        self.content = json.dumps(json_data).encode() if json_data is not None else b""
        self.text = self.content.decode()

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class InMemoryFhirClient:
    """
    Stands in for FhirClient: resources live in a dict and Patient/Encounter
    searches are paged `page_size` entries at a time. Every call is recorded
    in `calls` as (operation, argument) tuples.
    """

    def __init__(self, page_size=3):
        self.page_size = page_size
        self.resources = {}
        self.cursors = {}
        self.calls = []
        self._next_id = 1

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        pass

    def add(self, resource):
        resource = copy.deepcopy(resource)
        if not resource.get("id"):
            resource["id"] = str(self._next_id)
            self._next_id += 1
        self.resources[(resource["resourceType"], resource["id"])] = resource
        return copy.deepcopy(resource)

    def add_patient(self, family, given=("Test",), **extra):
        return self.add({"resourceType": "Patient", "name": [{"family": family, "given": list(given)}], **extra})

    def add_encounter(self, patient_id):
        return self.add({
            "resourceType": "Encounter",
            "status": "finished",
            "subject": {"reference": f"Patient/{patient_id}"},
        })

    @staticmethod
    def _matches(resource, key, value):
        if key == "name":
            parts = []
            for name in resource.get("name", []):
                parts.extend(name.get("given", []))
                parts.append(name.get("family", ""))
            return any(p.lower().startswith(value.lower()) for p in parts if p)
        if key == "patient":
            return resource.get("subject", {}).get("reference") == value
        raise ValueError(f"Unsupported search parameter {key}")

    def _page(self, resource_type, matches, offset):
        chunk = matches[offset:offset + self.page_size]
        links = []
        if offset + self.page_size < len(matches):
            url = f"{BASE_URL}/{resource_type}?_getpages={offset + self.page_size}"
            self.cursors[url] = (resource_type, matches, offset + self.page_size)
            links.append({"relation": "next", "url": url})
        return Bundle.model_validate({
            "resourceType": "Bundle",
            "type": "searchset",
            "total": len(matches),
            "link": links,
            "entry": [
                {"fullUrl": f"{BASE_URL}/{resource_type}/{r['id']}", "resource": copy.deepcopy(r)}
                for r in chunk
            ],
        })

    def search(self, resource_type, criteria=None):
        criteria = list(criteria or [])
        self.calls.append(("search", (resource_type, criteria)))
        params = parse_criteria(criteria)
        result_params = {k: v for k, v in params if k.startswith("_")}
        matches = [
            r for (t, _), r in self.resources.items()
            if t == resource_type and all(self._matches(r, k, v) for k, v in params if not k.startswith("_"))
        ]
        if result_params.get("_summary") == "count":
            return Bundle(type="searchset", total=len(matches))
        return self._page(resource_type, matches, 0)

    def continue_search(self, page):
        self.calls.append(("continue", page.next_link))
        if page.next_link is None:
            return None
        return self._page(*self.cursors[page.next_link])

    def read(self, resource_type, resource_id):
        self.calls.append(("read", f"{resource_type}/{resource_id}"))
        resource = self.resources.get((resource_type, resource_id))
        return copy.deepcopy(resource) if resource is not None else None

    def create(self, resource):
        self.calls.append(("create", resource))
        resource = {k: v for k, v in resource.items() if k != "id"}
        return self.add(resource)

    def update(self, resource):
        self.calls.append(("update", resource))
        return self.add(resource)

    def delete(self, reference, cascade=False):
        self.calls.append(("delete", reference))
        resource_type, resource_id = reference.split("/")
        self.resources.pop((resource_type, resource_id), None)

    def operations(self, name):
        return [arg for op, arg in self.calls if op == name]


@pytest.fixture
def fhir_server():
    return InMemoryFhirClient()


@pytest.fixture
def client():
    return FhirClient(BASE_URL, timeout=5)


@pytest.fixture
def mock_request(mocker, client):
    """Patch the client's session so tests can set return values per call."""
    return mocker.patch.object(client.session, "request")
