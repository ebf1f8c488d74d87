import logging
from typing import Any, Dict, List, Tuple

import requests
from pydantic import ValidationError

from .schemas import ErrorReport, OperationOutcome

logger = logging.getLogger(__name__)

# Unified code-based error definitions
CODE_ERROR_DEFS = {
    "not_found": {
        "template": "The server has no resource at {url} (HTTP {status_code}).",
        "next_steps": "Check the resource id, or search for the resource first.",
        "required_fields": ["url", "status_code"],
    },
    "gone": {
        "template": "The resource at {url} has been deleted (HTTP {status_code}).",
        "next_steps": "Search again to find a current resource.",
        "required_fields": ["url", "status_code"],
    },
    "invalid": {
        "template": "The server rejected the request to {url} (HTTP {status_code}). {diagnostics}",
        "next_steps": "Check the search criteria and resource content; both must be valid FHIR R4.",
        "required_fields": ["url", "status_code", "diagnostics"],
    },
    "unauthorized": {
        "template": "The server refused access to {url} (HTTP {status_code}).",
        "next_steps": "This program does not authenticate. Use an open server such as PublicHapi or Local.",
        "required_fields": ["url", "status_code"],
    },
    "unprocessable": {
        "template": "The server could not process the resource sent to {url} (HTTP {status_code}). {diagnostics}",
        "next_steps": "The resource failed server-side validation. See the issues reported by the server.",
        "required_fields": ["url", "status_code", "diagnostics"],
    },
    "server_error": {
        "template": "The FHIR server failed while handling {url} (HTTP {status_code}).",
        "next_steps": "Public test servers are sometimes unavailable. Retry later or pick another with --server.",
        "required_fields": ["url", "status_code"],
    },
    "timeout": {
        "template": "No response from {url} within the timeout.",
        "next_steps": "Increase --timeout (or FHIR_TIMEOUT), or try another server.",
        "required_fields": ["url"],
    },
    "connection": {
        "template": "Could not connect to {url}.",
        "next_steps": "Check the server URL and your network connection.",
        "required_fields": ["url"],
    },
    "malformed": {
        "template": "The server sent data that is not valid FHIR. {diagnostics}",
        "next_steps": "Make sure the base URL points at a FHIR R4 endpoint.",
        "required_fields": ["diagnostics"],
    },
    "invalid_input": {
        "template": "{diagnostics}",
        "next_steps": "Run with --help to see the accepted options.",
        "required_fields": ["diagnostics"],
    },
    "http_error": {
        "template": "The server answered {url} with HTTP {status_code}. {diagnostics}",
        "next_steps": "Check that the server supports this interaction on this resource.",
        "required_fields": ["url", "status_code"],
    },
    "unknown_error": {
        "template": "Unexpected error: {diagnostics}",
        "next_steps": "Run again with --verbose to see the full traceback.",
        "required_fields": ["diagnostics"],
    },
}

STATUS_ERROR_TYPES = {
    400: "invalid",
    401: "unauthorized",
    403: "unauthorized",
    404: "not_found",
    410: "gone",
    422: "unprocessable",
}


def _outcome_issues(response: requests.Response) -> List[Dict[str, Any]]:
    """Issues of an OperationOutcome body, or [] if the body is anything else."""
    try:
        body = response.json()
    except ValueError:
        return []
    if not isinstance(body, dict) or body.get("resourceType") != "OperationOutcome":
        return []
    try:
        outcome = OperationOutcome.model_validate(body)
    except ValidationError:
        return []
    return [issue.model_dump(include={"severity", "code", "diagnostics"}) for issue in outcome.issue]


def _request_url(exc: requests.RequestException) -> Any:
    if exc.response is not None and exc.response.url:
        return exc.response.url
    if exc.request is not None:
        return exc.request.url
    return None


def classify_exception(exc: Exception) -> Tuple[str, Dict[str, Any]]:
    """
    Map an exception raised by the client or the traversal to an error type
    from CODE_ERROR_DEFS plus the data its templates need.
    """
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        response = exc.response
        status = response.status_code
        issues = _outcome_issues(response)
        diagnostics = "; ".join(i["diagnostics"] for i in issues if i.get("diagnostics"))
        if status >= 500:
            error_type = "server_error"
        else:
            error_type = STATUS_ERROR_TYPES.get(status, "http_error")
        return error_type, {
            "url": _request_url(exc),
            "status_code": status,
            "diagnostics": diagnostics or (response.text or "")[:200],
            "issues": issues,
        }
    # Timeout before ConnectionError: ConnectTimeout is both.
    if isinstance(exc, requests.Timeout):
        return "timeout", {"url": _request_url(exc), "diagnostics": str(exc)}
    if isinstance(exc, requests.ConnectionError):
        return "connection", {"url": _request_url(exc), "diagnostics": str(exc)}
    # ValidationError is a ValueError; check it first.
    if isinstance(exc, ValidationError):
        return "malformed", {"diagnostics": f"{exc.error_count()} validation error(s) for {exc.title}."}
    if isinstance(exc, ValueError):
        return "invalid_input", {"diagnostics": str(exc)}
    return "unknown_error", {"diagnostics": f"{type(exc).__name__}: {exc}"}


def render_error(error_type: str, error_data: dict) -> ErrorReport:
    """
    Render an ErrorReport using code-based templates, with best-effort context.

    Args:
        error_type: str, e.g. 'not_found', 'timeout', 'unknown_error'
        error_data: dict with keys as required by error_type

    Returns:
        ErrorReport instance
    """
    error_def = CODE_ERROR_DEFS.get(error_type)
    missing = []
    if error_def:
        required = error_def.get("required_fields", [])
        missing = [f for f in required if error_data.get(f) is None]
        # Use available fields for formatting, fallback to placeholders for missing
        format_data = {k: (v if v is not None else f"<missing {k}>") for k, v in error_data.items()}
        for f in required:
            if f not in format_data:
                format_data[f] = "" if f == "diagnostics" else f"<missing {f}>"
        friendly_message = error_def["template"].format(**format_data).strip()
        next_steps = error_def.get("next_steps", "").format(**format_data)
    else:
        logger.warning("render_error: Unknown error_type '%s'", error_type)
        friendly_message = error_data.get("diagnostics") or "An error occurred."
        next_steps = error_data.get("next_steps")

    error_text = error_type.replace('_', ' ').capitalize()
    patched_issues = []
    for issue in error_data.get("issues", []):
        patched_issues.append({
            "severity": issue.get("severity", "error"),
            "code": issue.get("code", "unknown"),
            "diagnostics": issue.get("diagnostics", "<missing diagnostics>"),
        })

    # Add an information issue only if there are missing required fields
    if missing:
        patched_issues.append({
            "severity": "information",
            "code": "incomplete-context",
            "diagnostics": f"Warning: Missing fields for this error: {missing}",
        })

    return ErrorReport(
        error=error_text,
        friendly_message=friendly_message,
        next_steps=next_steps,
        resource_type=error_data.get("resource_type"),
        resource_id=error_data.get("resource_id"),
        status_code=error_data.get("status_code") if error_data.get("status_code") is not None else -1,
        issues=patched_issues,
    )


def describe_exception(exc: Exception) -> ErrorReport:
    return render_error(*classify_exception(exc))


def format_report(report: ErrorReport) -> str:
    """Plain-text rendering for the console."""
    lines = [report.friendly_message]
    for issue in report.issues:
        lines.append(f"  - [{issue.severity}] {issue.code}: {issue.diagnostics}")
    if report.next_steps:
        lines.append(report.next_steps)
    return "\n".join(lines)
