"""
payers.py
---------
CoverageBridge — EHR Insurance Verification Gateway
Seed payer table for the mock eligibility service.
Keyed by the payer identifier found at Coverage.payor[0].identifier[0].value.
In production: replace with a clearinghouse payer directory lookup.
"""

SEED_PAYERS = {
    "BCBS001": {
        "name": "Blue Cross Blue Shield",
        "active": True,
        "verification_endpoint": "mock",
    },
    "AETNA001": {
        "name": "Aetna",
        "active": True,
        "verification_endpoint": "mock",
    },
    "UHC001": {
        "name": "United Healthcare",
        "active": True,
        "verification_endpoint": "mock",
    },
}
