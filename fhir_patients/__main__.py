from fhir_patients.cli import main

raise SystemExit(main())
