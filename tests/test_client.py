import pytest
import requests
from conftest import BASE_URL, MockResponse

from fhir_patients.client import FhirClient, parse_criteria
from fhir_patients.schemas import Bundle


def _bundle(ids, next_url=None):
    bundle = {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": len(ids),
        "entry": [{"resource": {"resourceType": "Patient", "id": i}} for i in ids],
    }
    if next_url:
        bundle["link"] = [{"relation": "self", "url": f"{BASE_URL}/Patient"}, {"relation": "next", "url": next_url}]
    return bundle


def test_base_url_trailing_slash_is_stripped():
    client = FhirClient("http://hapi.fhir.org/baseR4/")
    assert client.base_url == "http://hapi.fhir.org/baseR4"
    assert client.session.headers["Accept"] == "application/fhir+json"


def test_search_success(client, mock_request):
    mock_request.return_value = MockResponse(_bundle(["abc", "def"]), 200)

    result = client.search("Patient", ["name=Smith", "gender=female"])

    assert isinstance(result, Bundle)
    assert result.total == 2
    assert [e.resource["id"] for e in result.entry] == ["abc", "def"]
    mock_request.assert_called_once_with(
        "GET", f"{BASE_URL}/Patient", timeout=5, params=[("name", "Smith"), ("gender", "female")]
    )


def test_search_without_criteria(client, mock_request):
    mock_request.return_value = MockResponse(_bundle([]), 200)
    assert client.search("Patient").entry == []
    assert mock_request.call_args.kwargs["params"] == []


def test_search_http_error(client, mock_request):
    mock_request.return_value = MockResponse({"resourceType": "OperationOutcome"}, 400)
    with pytest.raises(requests.HTTPError):
        client.search("Patient", ["nme=John"])


def test_search_without_body_returns_none(client, mock_request):
    mock_request.return_value = MockResponse(None, 200)
    assert client.search("Patient", ["name=Smith"]) is None


def test_continue_search_follows_next_link(client, mock_request):
    next_url = f"{BASE_URL}?_getpages=abc&_getpagesoffset=2"
    first = Bundle.model_validate(_bundle(["a", "b"], next_url=next_url))
    mock_request.return_value = MockResponse(_bundle(["c"]), 200)

    second = client.continue_search(first)

    assert [e.resource["id"] for e in second.entry] == ["c"]
    assert second.next_link is None
    mock_request.assert_called_once_with("GET", next_url, timeout=5)


def test_continue_search_relative_next_link(client, mock_request):
    first = Bundle.model_validate(_bundle(["a"], next_url="Patient?page=2"))
    mock_request.return_value = MockResponse(_bundle([]), 200)

    client.continue_search(first)

    assert mock_request.call_args.args == ("GET", f"{BASE_URL}/Patient?page=2")


def test_continue_search_on_last_page(client, mock_request):
    assert client.continue_search(Bundle.model_validate(_bundle(["a"]))) is None
    mock_request.assert_not_called()


def test_read_resource_success(client, mock_request):
    mock_request.return_value = MockResponse({"resourceType": "Patient", "id": "123"}, 200)
    result = client.read("Patient", "123")
    assert result["resourceType"] == "Patient"
    assert result["id"] == "123"
    assert mock_request.call_args.args == ("GET", f"{BASE_URL}/Patient/123")


@pytest.mark.parametrize("status", [404, 410])
def test_read_missing_resource_returns_none(client, mock_request, status):
    mock_request.return_value = MockResponse({"resourceType": "OperationOutcome"}, status)
    assert client.read("Patient", "doesnotexist") is None


def test_read_resource_http_error(client, mock_request):
    mock_request.return_value = MockResponse({"error": "boom"}, 500)
    with pytest.raises(requests.HTTPError):
        client.read("Patient", "123")


def test_create_posts_resource(client, mock_request):
    resource = {"resourceType": "Patient", "name": [{"family": "IO", "given": ["Coody"]}]}
    mock_request.return_value = MockResponse({**resource, "id": "new-1"}, 201)

    created = client.create(resource)

    assert created["id"] == "new-1"
    mock_request.assert_called_once_with(
        "POST", f"{BASE_URL}/Patient", timeout=5, json=resource,
        headers={"Content-Type": "application/fhir+json", "Prefer": "return=representation"},
    )


def test_create_without_representation(client, mock_request):
    mock_request.return_value = MockResponse(None, 201)
    assert client.create({"resourceType": "Patient"}) is None


def test_update_puts_to_resource_url(client, mock_request):
    resource = {"resourceType": "Patient", "id": "123", "gender": "unknown"}
    mock_request.return_value = MockResponse(resource, 200)

    assert client.update(resource) == resource
    assert mock_request.call_args.args == ("PUT", f"{BASE_URL}/Patient/123")
    assert mock_request.call_args.kwargs["json"] == resource
    assert mock_request.call_args.kwargs["headers"]["Prefer"] == "return=representation"


def test_update_requires_id(client, mock_request):
    with pytest.raises(ValueError):
        client.update({"resourceType": "Patient"})
    mock_request.assert_not_called()


def test_update_http_error(client, mock_request):
    mock_request.return_value = MockResponse({"resourceType": "OperationOutcome"}, 422)
    with pytest.raises(requests.HTTPError):
        client.update({"resourceType": "Patient", "id": "123"})


@pytest.mark.parametrize("cascade,params", [(True, {"_cascade": "delete"}), (False, None)])
def test_delete(client, mock_request, cascade, params):
    mock_request.return_value = MockResponse(None, 204)

    client.delete("Patient/123", cascade=cascade)

    mock_request.assert_called_once_with("DELETE", f"{BASE_URL}/Patient/123", timeout=5, params=params)


def test_delete_http_error(client, mock_request):
    mock_request.return_value = MockResponse({"resourceType": "OperationOutcome"}, 409)
    with pytest.raises(requests.HTTPError):
        client.delete("Patient/123")


def test_timeout_propagates(client, mock_request):
    mock_request.side_effect = requests.Timeout("read timed out")
    with pytest.raises(requests.Timeout):
        client.search("Patient", ["name=Smith"])


def test_context_manager_closes_session(mocker):
    with FhirClient(BASE_URL) as client:
        close = mocker.patch.object(client.session, "close")
    close.assert_called_once_with()


class TestParseCriteria:
    def test_splits_on_first_equals(self):
        assert parse_criteria(["patient=Patient/1", "birthdate=ge1990-01-01", "name:exact=a=b"]) == [
            ("patient", "Patient/1"),
            ("birthdate", "ge1990-01-01"),
            ("name:exact", "a=b"),
        ]

    def test_keeps_repeated_keys(self):
        assert parse_criteria(["name=a", "name=b"]) == [("name", "a"), ("name", "b")]

    def test_none_is_empty(self):
        assert parse_criteria(None) == []

    @pytest.mark.parametrize("criterion", ["name", "=Coody"])
    def test_rejects_malformed(self, criterion):
        with pytest.raises(ValueError):
            parse_criteria([criterion])
