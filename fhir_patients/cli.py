"""
Console entry point: a short tour of FHIR Patient CRUD against a public server.

Flow:
 1. optionally create a patient,
 2. search for patients matching the criteria (default name=Coody),
 3. optionally delete every match but the first,
 4. read the first match, print it, update it and print the result.

Exits 0 on success and 1 on any failure, after printing a readable error.
"""
import argparse
import logging
from datetime import date
from typing import List, Optional

from fhir_patients.client import FhirClient
from fhir_patients.config import FHIR_SERVERS, load_settings
from fhir_patients.error_renderer import describe_exception, format_report
from fhir_patients.patients import (
    create_patient,
    delete_all_but_first,
    get_patient,
    print_patient,
    update_patient,
)
from fhir_patients.search import DEFAULT_MAX_RESULTS, get_patients

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = ["name=Coody"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fhir-patients",
        description="Search, create, update and delete FHIR Patient resources.",
    )
    parser.add_argument(
        "--server",
        help=f"FHIR server name ({', '.join(FHIR_SERVERS)}) or base URL. "
        "Defaults to FHIR_SERVER_URL / FHIR_SERVER, then PublicFirelyServer.",
    )
    parser.add_argument("--timeout", type=int, help="HTTP timeout in seconds.")
    parser.add_argument(
        "--criteria", nargs="+", default=DEFAULT_CRITERIA, metavar="KEY=VALUE",
        help="Patient search criteria (default: name=Coody).",
    )
    parser.add_argument("--max-results", type=int, default=DEFAULT_MAX_RESULTS)
    parser.add_argument(
        "--only-with-encounters", action="store_true",
        help="Keep only patients that have at least one Encounter.",
    )
    parser.add_argument("--create", action="store_true", help="Create a patient before searching.")
    parser.add_argument("--given", nargs="+", default=["Coody"], help="Given names for --create.")
    parser.add_argument("--family", default="IO", help="Family name for --create.")
    parser.add_argument(
        "--birth-date", type=date.fromisoformat, default=date(1990, 1, 1),
        help="Birth date for --create (YYYY-MM-DD).",
    )
    parser.add_argument(
        "--delete-duplicates", action="store_true",
        help="Delete every matching patient except the first (cascading).",
    )
    parser.add_argument("--no-update", action="store_true", help="Skip the read/update step.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log HTTP requests.")
    return parser


def run(client: FhirClient, args: argparse.Namespace) -> None:
    if args.create:
        create_patient(client, args.given, args.family, args.birth_date)

    patients = get_patients(client, args.criteria, args.max_results, args.only_with_encounters)

    if args.delete_duplicates:
        delete_all_but_first(client, patients)

    if not patients or args.no_update:
        return
    if not patients[0].id:
        logger.warning("First matching patient has no id; skipping read and update")
        return

    patient = get_patient(client, patients[0].id)
    print("Patient before update:")
    print_patient(patient)
    if patient is not None:
        updated = update_patient(client, patient)
        print("Patient after update:")
        print_patient(updated)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        settings = load_settings(server=args.server, timeout=args.timeout)
        logger.info("Using FHIR server %s", settings.server_url)
        with FhirClient(settings.server_url, timeout=settings.timeout) as client:
            run(client, args)
        return 0
    except Exception as e:
        logger.debug("Run failed", exc_info=True)
        print(f"Error: {format_report(describe_exception(e))}")
        return 1
