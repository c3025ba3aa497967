"""
tests/
------
EHR Insurance Verification Gateway — Test Package
---------------------------------------------------
Contains the test suites for the CoverageBridge verification gateway.

Test Modules:
    - test_fhir_mapper.py: Patient / Coverage normalisation and payer id resolution
    - test_eligibility.py: Mock eligibility service (payer table, decision source)
    - test_fhir_client.py: FHIR gateway client against httpx.MockTransport
    - test_verification.py: Single and batch verification orchestration
    - test_main.py: FastAPI endpoints end to end

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""
