"""Pydantic models for the FHIR R4 resources this program touches.

Only the elements the tutorial reads or writes are declared. Everything else
the server sends is kept as extra data so a full-replacement update does not
drop it.
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _prune_empty(value: Any) -> Any:
    # FHIR forbids empty arrays and objects in JSON.
    if isinstance(value, dict):
        pruned = {k: _prune_empty(v) for k, v in value.items()}
        return {k: v for k, v in pruned.items() if v not in ([], {})}
    if isinstance(value, list):
        return [_prune_empty(v) for v in value]
    return value


class FhirModel(BaseModel):
    """Base for all FHIR elements: camelCase aliases, unknown elements preserved."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_fhir(self) -> Dict[str, Any]:
        """Serialize to a FHIR JSON-ready dict."""
        return _prune_empty(self.model_dump(mode="json", by_alias=True, exclude_none=True))


class AdministrativeGender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class ContactPointSystem(str, Enum):
    PHONE = "phone"
    FAX = "fax"
    EMAIL = "email"
    PAGER = "pager"
    URL = "url"
    SMS = "sms"
    OTHER = "other"


class ContactPointUse(str, Enum):
    HOME = "home"
    WORK = "work"
    TEMP = "temp"
    OLD = "old"
    MOBILE = "mobile"


class HumanName(FhirModel):
    """
    A name of a human.

    family: family name (surname).
    given: given names, in order.
    """
    family: Optional[str] = Field(None, description="Family name (often called 'Surname').")
    given: List[str] = Field(default_factory=list, description="Given names, in order.")


class ContactPoint(FhirModel):
    """A phone number, email address or similar contact detail."""
    system: Optional[ContactPointSystem] = Field(None, description="phone | fax | email | pager | url | sms | other")
    use: Optional[ContactPointUse] = Field(None, description="home | work | temp | old | mobile")
    value: Optional[str] = Field(None, description="The actual contact point details.")


class Reference(FhirModel):
    reference: Optional[str] = None
    display: Optional[str] = None


class Patient(FhirModel):
    """
    FHIR Patient resource.

    id: server-assigned logical id (absent before create).
    name: list of HumanName.
    birth_date: ISO date string (FHIR allows partial dates such as '1990').
    gender: administrative gender.
    telecom: list of ContactPoint.
    """
    resource_type: Literal["Patient"] = Field("Patient", alias="resourceType")
    id: Optional[str] = Field(None, description="Logical id assigned by the server.")
    name: List[HumanName] = Field(default_factory=list)
    birth_date: Optional[str] = Field(None, alias="birthDate")
    gender: Optional[AdministrativeGender] = None
    telecom: List[ContactPoint] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "resourceType": "Patient",
                "id": "123",
                "name": [{"family": "IO", "given": ["Coody"]}],
                "birthDate": "1990-01-01",
                "gender": "unknown",
                "telecom": [{"system": "phone", "use": "mobile", "value": "1234567890"}],
            }
        }
    )

    @field_validator("birth_date", mode="before")
    @classmethod
    def _coerce_birth_date(cls, value: Any) -> Any:
        if isinstance(value, date):
            return value.isoformat()
        return value

    @property
    def reference(self) -> str:
        """Relative reference, e.g. 'Patient/123'."""
        return f"Patient/{self.id}"


class Encounter(FhirModel):
    """FHIR Encounter; only its existence and subject matter here."""
    resource_type: Literal["Encounter"] = Field("Encounter", alias="resourceType")
    id: Optional[str] = None
    status: Optional[str] = None
    subject: Optional[Reference] = None


class BundleLink(FhirModel):
    relation: str
    url: str


class BundleEntry(FhirModel):
    full_url: Optional[str] = Field(None, alias="fullUrl")
    resource: Optional[Dict[str, Any]] = None


class Bundle(FhirModel):
    """
    One page of search results (a FHIR searchset Bundle).

    total: number of matches reported by the server, if it reports one.
    entry: the resources on this page, in server order.
    link: navigation links; the 'next' link continues the search.
    """
    resource_type: Literal["Bundle"] = Field("Bundle", alias="resourceType")
    type: Optional[str] = None
    total: Optional[int] = None
    link: List[BundleLink] = Field(default_factory=list)
    entry: List[BundleEntry] = Field(default_factory=list)

    @property
    def next_link(self) -> Optional[str]:
        """URL of the next page, or None on the last page."""
        for link in self.link:
            if link.relation == "next":
                return link.url
        return None


class OperationOutcomeIssue(FhirModel):
    """
    Represents a single FHIR OperationOutcome issue.

    severity: issue severity (e.g., 'error', 'warning').
    code: machine-readable issue code (e.g., 'not-found').
    diagnostics: human-readable explanation of the issue.
    """
    severity: Optional[str] = Field(None, description="Issue severity (e.g., 'error', 'warning').")
    code: Optional[str] = Field(None, description="Machine-readable issue code (e.g., 'not-found').")
    diagnostics: Optional[str] = Field(None, description="Human-readable explanation of the issue.")


class OperationOutcome(FhirModel):
    resource_type: Literal["OperationOutcome"] = Field("OperationOutcome", alias="resourceType")
    issue: List[OperationOutcomeIssue] = Field(default_factory=list)


class ErrorReport(BaseModel):
    """
    Console-facing description of a failed FHIR interaction.

    error: short error summary.
    friendly_message: plain-language explanation.
    next_steps: optional remediation guidance.
    resource_type: FHIR resource type involved.
    resource_id: specific FHIR resource ID.
    status_code: HTTP status code, or -1 when no response was received.
    issues: OperationOutcome issues returned by the server.
    """
    error: str = Field(..., description="Short error summary.")
    friendly_message: str = Field(..., description="Plain-language explanation of what went wrong.")
    next_steps: Optional[str] = Field(None, description="Suggestions for resolving or proceeding after the error.")
    resource_type: Optional[str] = Field(None, description="FHIR resource type involved in the error.")
    resource_id: Optional[str] = Field(None, description="Specific FHIR resource ID requested.")
    status_code: int = Field(..., description="HTTP status code returned by the server.")
    issues: List[OperationOutcomeIssue] = Field(default_factory=list, description="Server-reported issues.")
