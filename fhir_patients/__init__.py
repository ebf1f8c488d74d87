"""Tutorial console client for FHIR Patient search and CRUD."""
