"""
Server selection and runtime settings.

Environment variables (a local .env file is loaded first):
 - FHIR_SERVER_URL: base URL of the FHIR server; wins over FHIR_SERVER.
 - FHIR_SERVER: name of an entry in FHIR_SERVERS (default PublicFirelyServer).
 - FHIR_TIMEOUT: HTTP timeout in seconds (default 30).
"""
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Known public and local FHIR R4 servers.
FHIR_SERVERS = {
    "PublicFirelyServer": "https://server.fire.ly/r4",
    "PublicHapi": "http://hapi.fhir.org/baseR4/",
    "Local": "http://localhost:8080/fhirR4",
}

DEFAULT_SERVER = "PublicFirelyServer"
DEFAULT_TIMEOUT = 30


class Settings(BaseModel):
    server_url: str = Field(..., description="Base URL of the FHIR server.")
    timeout: int = Field(DEFAULT_TIMEOUT, gt=0, description="HTTP timeout in seconds.")


def resolve_server_url(name_or_url: str) -> str:
    """
    Map a FHIR_SERVERS name to its URL; URLs are passed through.

    Raises:
        ValueError: for a name that is neither known nor a URL.
    """
    if name_or_url in FHIR_SERVERS:
        return FHIR_SERVERS[name_or_url]
    if name_or_url.startswith(("http://", "https://")):
        return name_or_url
    raise ValueError(
        f"Unknown FHIR server '{name_or_url}'. Known servers: {', '.join(sorted(FHIR_SERVERS))}."
    )


def load_settings(
    server: Optional[str] = None,
    timeout: Optional[int] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from explicit overrides, then the environment, then defaults.

    Args:
        server: server name or URL (e.g. from the command line).
        timeout: timeout override in seconds.
        env: environment mapping; defaults to os.environ after loading .env.
    """
    if env is None:
        # Load .env file for local development
        load_dotenv()
        env = os.environ

    if server is not None:
        server_url = resolve_server_url(server)
    elif env.get("FHIR_SERVER_URL"):
        server_url = env["FHIR_SERVER_URL"]
    else:
        server_url = resolve_server_url(env.get("FHIR_SERVER", DEFAULT_SERVER))

    if timeout is None:
        timeout = int(env.get("FHIR_TIMEOUT", DEFAULT_TIMEOUT))

    return Settings(server_url=server_url, timeout=timeout)
