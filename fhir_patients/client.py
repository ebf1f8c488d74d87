"""HTTP client for the FHIR R4 REST interactions used by this program.

Provides search (with continuation), read, create, update and delete.
Raises `requests.exceptions.HTTPError` for non-2xx responses and
`requests.exceptions.Timeout` if a request times out. A read of a resource
that does not exist returns None rather than raising.

Usage:
    with FhirClient("https://server.fire.ly/r4") as client:
        page = client.search("Patient", ["name=Coody"])
        client.read("Patient", "123")
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

import requests

from fhir_patients.schemas import Bundle

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"

# Sent with POST and PUT so the server answers with the stored resource.
WRITE_HEADERS = {"Content-Type": FHIR_JSON, "Prefer": "return=representation"}

# Statuses that mean "no such resource" on a read.
ABSENT_STATUSES = (404, 410)


def parse_criteria(criteria: Optional[Iterable[str]]) -> List[Tuple[str, str]]:
    """
    Split 'key=value' search criteria into query parameter pairs.

    Repeated keys are kept (FHIR ANDs them). Only the first '=' separates
    key from value, so 'patient=Patient/1' and 'birthdate=ge1990' work as-is.
    """
    params: List[Tuple[str, str]] = []
    for criterion in criteria or []:
        key, sep, value = criterion.partition("=")
        if not sep or not key:
            raise ValueError(f"Search criterion '{criterion}' is not of the form key=value.")
        params.append((key, value))
    return params


class FhirClient:
    """
    HTTP client for a FHIR R4 server.

    All requests go through one `requests.Session`. Representations are
    requested back from create and update (`Prefer: return=representation`).

    Raises:
        requests.exceptions.HTTPError: for any non-2xx HTTP response (except a
            404/410 on read)
        requests.exceptions.Timeout: if a request exceeds the timeout

    Examples:
        >>> client = FhirClient("http://localhost:8080/fhirR4", timeout=5)
        >>> client.read("Patient", "123")
        {'resourceType': 'Patient', ...}
        >>> client.search("Encounter", ["patient=Patient/123"])
        Bundle(...)
    """
    def __init__(self, base_url: str, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            base_url: The FHIR base URL (e.g., 'https://server.fire.ly/r4'). A trailing slash will be stripped.
            timeout: Request timeout in seconds.
            session: Optional pre-configured session (proxies, auth adapters).
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": FHIR_JSON})

    def __enter__(self) -> "FhirClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _url(self, path: str) -> str:
        # Continuation links are usually absolute; urljoin leaves those alone.
        return urljoin(self.base_url + '/', path.lstrip('/'))

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self._url(path)
        logger.debug("%s %s params=%s", method, url, kwargs.get("params"))
        return self.session.request(method, url, timeout=self.timeout, **kwargs)

    @staticmethod
    def _representation(resp: requests.Response) -> Optional[Dict[str, Any]]:
        if not resp.content:
            return None
        return resp.json()

    def search(self, resource_type: str, criteria: Optional[Iterable[str]] = None) -> Optional[Bundle]:
        """
        Search for resources of a given type.

        Args:
            resource_type: The FHIR resource type (e.g., 'Patient').
            criteria: 'key=value' strings (e.g., ['name=Coody']).

        Returns:
            The first page of results, or None if the server sent no body.

        Raises:
            requests.exceptions.HTTPError: on non-2xx HTTP response.
            pydantic.ValidationError: if the body is not a Bundle.
        """
        resp = self._request("GET", resource_type, params=parse_criteria(criteria))
        resp.raise_for_status()
        body = self._representation(resp)
        return Bundle.model_validate(body) if body is not None else None

    def continue_search(self, page: Bundle) -> Optional[Bundle]:
        """
        Fetch the page after `page` by following its 'next' link.

        Returns:
            The next page, or None when `page` is the last one.
        """
        next_link = page.next_link
        if next_link is None:
            return None
        resp = self._request("GET", next_link)
        resp.raise_for_status()
        body = self._representation(resp)
        return Bundle.model_validate(body) if body is not None else None

    def read(self, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a FHIR resource by type and ID.

        Returns:
            The resource as a dict, or None if the server reports it missing or deleted.

        Raises:
            requests.exceptions.HTTPError: on any other non-2xx HTTP response.
        """
        resp = self._request("GET", f"{resource_type}/{resource_id}")
        if resp.status_code in ABSENT_STATUSES:
            logger.info("%s/%s not found (HTTP %s)", resource_type, resource_id, resp.status_code)
            return None
        resp.raise_for_status()
        return self._representation(resp)

    def create(self, resource: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        POST a new resource to its type endpoint.

        Returns:
            The server's representation (with the assigned id), or None if the
            server answered without a body.
        """
        resource_type = resource["resourceType"]
        resp = self._request("POST", resource_type, json=resource, headers=WRITE_HEADERS)
        resp.raise_for_status()
        return self._representation(resp)

    def update(self, resource: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        PUT a resource as a full replacement of the stored version.

        Raises:
            ValueError: if the resource has no id.
        """
        resource_type = resource["resourceType"]
        resource_id = resource.get("id")
        if not resource_id:
            raise ValueError(f"Cannot update a {resource_type} without an id.")
        resp = self._request(
            "PUT", f"{resource_type}/{resource_id}", json=resource, headers=WRITE_HEADERS
        )
        resp.raise_for_status()
        return self._representation(resp)

    def delete(self, reference: str, cascade: bool = False) -> None:
        """
        DELETE the resource at `reference` (e.g., 'Patient/123').

        Args:
            cascade: also delete resources that reference it (`_cascade=delete`,
                supported by HAPI and Firely).
        """
        params = {"_cascade": "delete"} if cascade else None
        resp = self._request("DELETE", reference, params=params)
        resp.raise_for_status()

    # TODO: Support `Prefer: return=minimal` servers in create/update by
    # following the Location header when the response has no body.
