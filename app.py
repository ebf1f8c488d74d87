"""Run the FHIR patient tutorial from a source checkout: python app.py [options]"""
import sys

from fhir_patients.cli import main

if __name__ == '__main__':
    sys.exit(main())
