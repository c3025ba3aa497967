"""
test_eligibility.py
-------------------
CoverageBridge — EHR Insurance Verification Gateway — Test Suite for eligibility.py
------------------------------------------------------------------------------------
Tests cover:
    - Known payer: success status, payer name, fixed demo values, 2 benefits
    - Pinned decision source: both eligible branches
    - Unknown / absent payer: error report with nothing else populated
    - Default decision source: ~80% eligible over many seeded trials
    - Payer table: read-only, injectable

Run:
    pytest tests/test_eligibility.py -v --tb=short

Author: Shreelakshmi Gopinatha Rao
Project: CoverageBridge — EHR Insurance Verification Gateway
"""

import asyncio
import random
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from eligibility import EligibilityService, random_decision
from schemas import CoverageRecord, PatientRecord


# ── Helpers ────────────────────────────────────────────────────────────────────

PATIENT = PatientRecord(id="p1", first_name="John", last_name="Smith")


def _coverage(payer_id):
    payor = [{"identifier": [{"value": payer_id}]}] if payer_id else []
    return CoverageRecord(id="c1", status="active", payor=payor)


def _service(eligible=True, **kwargs):
    return EligibilityService(decide=lambda: eligible, delay_s=0, **kwargs)


def _verify(service, payer_id):
    return asyncio.run(service.verify_eligibility(PATIENT, _coverage(payer_id)))


# ── Known payers ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("payer_id, payer_name", [
    ("BCBS001", "Blue Cross Blue Shield"),
    ("AETNA001", "Aetna"),
    ("UHC001", "United Healthcare"),
])
def test_known_payer_success(payer_id, payer_name):
    report = _verify(_service(), payer_id)
    assert report.status == "success"
    assert report.payer_name == payer_name


def test_known_payer_fixed_demo_values():
    report = _verify(_service(), "BCBS001")
    assert report.effective_date == "2024-01-01"
    assert report.termination_date == "2024-12-31"
    assert report.copay == "$25.00"
    assert report.deductible == "$1,500.00"
    assert report.deductible_met == "$450.00"


def test_known_payer_two_fixed_benefits():
    report = _verify(_service(), "AETNA001")
    benefits = [b.to_wire() for b in report.benefits]
    assert benefits == [
        {"service": "Office Visit", "coverage": "Covered", "copay": "$25.00"},
        {"service": "Preventive Care", "coverage": "Covered 100%", "copay": "$0.00"},
    ]


def test_known_payer_verification_date_is_utc_iso():
    report = _verify(_service(), "UHC001")
    assert report.verification_date.endswith("Z")
    assert "T" in report.verification_date


def test_pinned_decision_eligible():
    assert _verify(_service(eligible=True), "BCBS001").eligible is True


def test_pinned_decision_not_eligible():
    report = _verify(_service(eligible=False), "BCBS001")
    assert report.status == "success"
    assert report.eligible is False


def test_success_wire_format():
    data = _verify(_service(), "BCBS001").to_wire()
    for key in ["status", "eligible", "payerName", "effectiveDate", "terminationDate",
                "copay", "deductible", "deductibleMet", "benefits", "verificationDate"]:
        assert key in data, f"Missing key in success report: {key}"
    assert "message" not in data


# ── Unknown payers ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("payer_id", ["CIGNA999", "", None])
def test_unknown_or_absent_payer_is_error(payer_id):
    report = _verify(_service(), payer_id)
    assert report.status == "error"
    assert report.eligible is False
    assert report.message == "Payer not recognized"


def test_unknown_payer_wire_has_only_error_fields():
    data = _verify(_service(), "CIGNA999").to_wire()
    assert data == {"status": "error", "eligible": False, "message": "Payer not recognized"}


def test_unknown_payer_does_not_consult_decision_source():
    calls = []
    service = EligibilityService(decide=lambda: calls.append(1) or True, delay_s=0)
    _verify(service, "CIGNA999")
    assert calls == []


# ── Decision source ────────────────────────────────────────────────────────────

def test_default_rate_is_roughly_eighty_percent():
    service = EligibilityService(decide=random_decision(rng=random.Random(1234)), delay_s=0)

    async def run_many():
        coverage = _coverage("BCBS001")
        return [
            (await service.verify_eligibility(PATIENT, coverage)).eligible
            for _ in range(1000)
        ]

    results = asyncio.run(run_many())
    rate = sum(results) / len(results)
    assert 0.72 <= rate <= 0.88


def test_random_decision_extremes():
    assert random_decision(rate=1.0)() is True
    assert random_decision(rate=0.0)() is False


# ── Payer table ────────────────────────────────────────────────────────────────

def test_payer_table_is_read_only():
    service = _service()
    with pytest.raises(TypeError):
        service.payers["NEW001"] = {"name": "New"}


def test_payer_table_injectable():
    service = _service(payers={"CIGNA001": {"name": "Cigna", "active": True}})
    assert _verify(service, "CIGNA001").payer_name == "Cigna"
    assert _verify(service, "BCBS001").status == "error"


def test_injected_table_copy_not_affected_by_caller_mutation():
    rows = {"CIGNA001": {"name": "Cigna"}}
    service = _service(payers=rows)
    rows["LATE001"] = {"name": "Late"}
    assert service.lookup_payer("LATE001") is None
